"""
Comment API endpoints (mounted under /api/calculators beside the calculator routes).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import dependencies
from auth.principal import Principal
from core.pagination import ListParams, list_params

from . import schemas, service

router = APIRouter()


@router.get("/{calc_id}/comments")
async def list_comments(calc_id: int, params: ListParams = Depends(list_params)) -> dict:
    return await service.list_comments(calc_id, params)


@router.post("/{calc_id}/comments")
async def create_comment(
    calc_id: int,
    payload: schemas.CommentRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.create_comment(principal, calc_id, payload)


@router.post("/comments/{comment_id}/reply")
async def reply_comment(
    comment_id: int,
    payload: schemas.CommentRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.reply_comment(principal, comment_id, payload)


@router.post("/comments/{comment_id}/like")
async def like_comment(
    comment_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.like_comment(principal, comment_id)


@router.post("/comments/{comment_id}/unlike")
async def unlike_comment(
    comment_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.unlike_comment(principal, comment_id)


@router.delete("/comments/{comment_id}/delete")
async def delete_comment(
    comment_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.delete_comment(principal, comment_id)


@router.delete("/comments/{comment_id}/replies/{reply_id}/delete")
async def delete_reply(
    comment_id: int,
    reply_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.delete_reply(principal, comment_id, reply_id)
