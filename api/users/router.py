"""
User API endpoints (mounted under /api/user).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from auth import dependencies
from auth.principal import Principal
from auth.router import respond_with_session
from auth.schemas import SessionResponse
from core.pagination import ListParams, list_params

from . import schemas, service

router = APIRouter()


@router.get("")
async def list_users(
    params: ListParams = Depends(list_params),
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.list_users(params)


# Fixed paths are declared before `/{user_id}` so they are not captured by it.
@router.get("/notifications")
async def list_notifications(
    params: ListParams = Depends(list_params),
    principal: Principal = Depends(dependencies.require_bearer),
) -> dict:
    return await service.notifications(principal, params)


@router.patch("/notifications/{notification_id}/read")
async def read_notification(
    notification_id: int,
    principal: Principal = Depends(dependencies.require_bearer),
) -> dict:
    return await service.mark_notification_read(principal, notification_id)


@router.post("/activation/resend")
async def resend_activation(principal: Principal = Depends(dependencies.require_session)) -> dict:
    return await service.send_activation_email(principal)


@router.put("/activation/{t}")
async def activate(t: str) -> dict:
    return await service.activate(t)


@router.put("/edit/{user_id}")
async def edit_user(
    user_id: int,
    payload: schemas.EditUserRequest,
    response: Response,
    principal: Principal = Depends(dependencies.require_session),
) -> SessionResponse:
    session = await service.edit_user(principal, user_id, payload)
    return respond_with_session(response, session)


@router.put("/change-password/{user_id}")
async def change_password(
    user_id: int,
    payload: schemas.ChangePasswordRequest,
    response: Response,
    principal: Principal = Depends(dependencies.require_session),
) -> SessionResponse:
    session = await service.change_password(principal, user_id, payload)
    return respond_with_session(response, session)


@router.put("/change-privacy/{user_id}")
async def change_privacy(
    user_id: int,
    payload: schemas.ChangePrivacyRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.change_privacy(principal, user_id, payload)


@router.delete("/delete/{user_id}")
async def delete_user(
    user_id: int,
    delete_calculators: bool = Query(False, alias="deleteCalculators"),
    delete_comments: bool = Query(False, alias="deleteComments"),
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.delete_user(
        principal,
        user_id,
        delete_calculators=delete_calculators,
        delete_comments=delete_comments,
    )


@router.get("/{user_id}")
async def get_user(user_id: int) -> dict:
    return await service.get_user(user_id)


@router.get("/{user_id}/comments")
async def commented_calculators(
    user_id: int,
    params: ListParams = Depends(list_params),
    principal: Principal | None = Depends(dependencies.optional_session),
) -> dict:
    return await service.commented_calculators(principal, user_id, params)
