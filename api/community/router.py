"""
Moderation endpoints: reports (mounted under /api/report) and contact
messages (mounted under /api/contact).

No `from __future__ import annotations` here: slowapi wraps the limited
endpoints and FastAPI resolves their annotations through the wrapper.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from auth import dependencies
from auth.principal import Principal
from core.pagination import ListParams, list_params
from core.ratelimit import limit_value, limiter

from . import schemas, service

report_router = APIRouter()
contact_router = APIRouter()


@report_router.get("")
async def list_seen_reports(
    params: ListParams = Depends(list_params),
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.list_reports(principal, params, seen=True)


@report_router.get("/unseen")
async def list_unseen_reports(
    params: ListParams = Depends(list_params),
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.list_reports(principal, params, seen=False)


@report_router.post("/submit")
@limiter.shared_limit(limit_value(), scope="community")
async def submit_report(
    payload: schemas.ReportRequest,
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict:
    return await service.submit_report(payload, background_tasks)


@report_router.post("/comment-report")
@limiter.shared_limit(limit_value(), scope="community")
async def submit_comment_report(
    payload: schemas.CommentReportRequest,
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict:
    return await service.submit_comment_report(payload, background_tasks)


@report_router.patch("/update/{report_id}")
async def update_report(
    report_id: int,
    payload: schemas.ReportStatusRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.update_report(principal, report_id, payload)


@report_router.delete("/{report_id}")
async def delete_report(
    report_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.delete_report(principal, report_id)


@contact_router.get("")
async def list_seen_contacts(
    params: ListParams = Depends(list_params),
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.list_contacts(principal, params, seen=True)


@contact_router.get("/unseen")
async def list_unseen_contacts(
    params: ListParams = Depends(list_params),
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.list_contacts(principal, params, seen=False)


@contact_router.post("")
@limiter.shared_limit(limit_value(), scope="community")
async def submit_contact(
    payload: schemas.ContactRequest,
    request: Request,
    background_tasks: BackgroundTasks,
) -> dict:
    return await service.submit_contact(payload, background_tasks)


@contact_router.patch("/update/{contact_id}")
async def update_contact(
    contact_id: int,
    payload: schemas.ContactStatusRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.update_contact(principal, contact_id, payload)


@contact_router.delete("/{contact_id}")
async def delete_contact(
    contact_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.delete_contact(principal, contact_id)
