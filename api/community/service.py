"""
Moderation: user reports, contact messages and the admin review queues.

Submissions are public (rate limited). The admin notification email is
best effort and sent after the response via `BackgroundTasks`.
"""

from __future__ import annotations

import logging

import asyncpg
from fastapi import BackgroundTasks

from auth import policy
from auth.principal import Principal
from core import mailer
from core.errors import NotFoundOrTransient, ValidationError
from core.ids import normalize_id
from core.pagination import ListParams, envelope

from . import repository, schemas

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"


def _or_anonymous(value) -> str:
    return normalize_id(value) or ANONYMOUS


def _notify_admin(background_tasks: BackgroundTasks, *, template_name: str, subject: str, replacements: dict) -> None:
    background_tasks.add_task(
        mailer.send_templated_email_quietly,
        template_name=template_name,
        to_email=mailer.admin_email(),
        subject=subject,
        replacements={"receiver": "Admin", **replacements},
    )


def to_report(row: dict) -> dict:
    return {
        "id": int(row["id"]),
        "username": row["username"],
        "email": row["email"],
        "title": row["title"],
        "subject": row.get("subject"),
        "message": row.get("message"),
        "calculatorTitle": row.get("calculator_title"),
        "calculatorId": row.get("calculator_id"),
        "commentContent": row.get("comment_content"),
        "commentId": row.get("comment_id"),
        "commentReportReasons": row.get("comment_report_reasons") or [],
        "isReportSeen": bool(row["is_report_seen"]),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def to_contact(row: dict) -> dict:
    return {
        "id": int(row["id"]),
        "username": row["username"],
        "email": row["email"],
        "subject": row.get("subject"),
        "message": row.get("message"),
        "isContactSeen": bool(row["is_contact_seen"]),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


async def submit_report(payload: schemas.ReportRequest, background_tasks: BackgroundTasks) -> dict:
    if not payload.title or not payload.subject or not payload.message:
        raise ValidationError()

    username = _or_anonymous(payload.username)
    email = _or_anonymous(payload.email)
    calculator_id = _or_anonymous(payload.calculator_id)

    try:
        report = await repository.create_report(
            username=username,
            email=email,
            title=payload.title,
            subject=payload.subject,
            message=payload.message,
            calculator_title=payload.title,
            calculator_id=calculator_id,
        )
    except (asyncpg.PostgresError, RuntimeError) as exc:
        logger.exception("report_create_failed")
        raise NotFoundOrTransient() from exc

    logger.info("report_submitted id=%s calculator_id=%s", report["id"], calculator_id)
    _notify_admin(
        background_tasks,
        template_name="report.html",
        subject="Alvacus report",
        replacements={
            "calculatorTitle": payload.title,
            "calculatorId": calculator_id,
            "reporterUsername": username,
            "reporterEmail": email,
            "subject": payload.subject,
            "message": payload.message,
        },
    )
    return {"message": "success"}


async def submit_comment_report(payload: schemas.CommentReportRequest, background_tasks: BackgroundTasks) -> dict:
    if not payload.report_reasons or not payload.comment_content or not payload.title:
        raise ValidationError()

    username = _or_anonymous(payload.username)
    email = _or_anonymous(payload.email)
    calculator_id = _or_anonymous(payload.calculator_id)
    comment_id = _or_anonymous(payload.comment_id)

    try:
        report = await repository.create_report(
            username=username,
            email=email,
            title=payload.title,
            calculator_title=payload.title,
            calculator_id=calculator_id,
            comment_content=payload.comment_content,
            comment_id=comment_id,
            comment_report_reasons=payload.report_reasons,
        )
    except (asyncpg.PostgresError, RuntimeError) as exc:
        logger.exception("comment_report_create_failed")
        raise NotFoundOrTransient() from exc

    logger.info("comment_report_submitted id=%s comment_id=%s", report["id"], comment_id)
    _notify_admin(
        background_tasks,
        template_name="comment-report.html",
        subject="Alvacus comment report",
        replacements={
            "calculatorTitle": payload.title,
            "calculatorId": calculator_id,
            "commentId": comment_id,
            "commentContent": payload.comment_content,
            "reporterUsername": username,
            "reporterEmail": email,
            "reportReasons": [str(reason) for reason in payload.report_reasons],
        },
    )
    return {"message": "success"}


async def list_reports(principal: Principal, params: ListParams, *, seen: bool) -> dict:
    policy.require(principal, "moderation:review")
    rows = await repository.list_reports(seen=seen, search=params.search, limit=params.limit, offset=params.offset)
    count = await repository.count_reports(seen=seen, search=params.search)
    return envelope("reports", [to_report(r) for r in rows], count=count, params=params)


async def update_report(principal: Principal, report_id: int, payload: schemas.ReportStatusRequest) -> dict:
    policy.require(principal, "moderation:review")
    if payload.is_report_seen is None:
        raise ValidationError()
    if not await repository.set_report_seen(report_id, is_seen=payload.is_report_seen):
        raise NotFoundOrTransient("Report not found")
    return {"message": "Report is updated"}


async def delete_report(principal: Principal, report_id: int) -> dict:
    policy.require(principal, "moderation:review")
    if not await repository.delete_report(report_id):
        raise NotFoundOrTransient("Report not found")
    logger.info("report_deleted id=%s by=%s", report_id, principal.user_id)
    return {"message": "Report is deleted"}


async def submit_contact(payload: schemas.ContactRequest, background_tasks: BackgroundTasks) -> dict:
    if not payload.username or not payload.email or not payload.subject or not payload.message:
        raise ValidationError()

    try:
        contact = await repository.create_contact(
            username=payload.username,
            email=payload.email,
            subject=payload.subject,
            message=payload.message,
        )
    except (asyncpg.PostgresError, RuntimeError) as exc:
        logger.exception("contact_create_failed")
        raise NotFoundOrTransient() from exc

    logger.info("contact_submitted id=%s", contact["id"])
    _notify_admin(
        background_tasks,
        template_name="contact.html",
        subject="Alvacus contact",
        replacements={
            "username": payload.username,
            "email": payload.email,
            "subject": payload.subject,
            "message": payload.message,
        },
    )
    return {"message": "success"}


async def list_contacts(principal: Principal, params: ListParams, *, seen: bool) -> dict:
    policy.require(principal, "moderation:review")
    rows = await repository.list_contacts(seen=seen, search=params.search, limit=params.limit, offset=params.offset)
    count = await repository.count_contacts(seen=seen, search=params.search)
    return envelope("contacts", [to_contact(r) for r in rows], count=count, params=params)


async def update_contact(principal: Principal, contact_id: int, payload: schemas.ContactStatusRequest) -> dict:
    policy.require(principal, "moderation:review")
    if payload.is_contact_seen is None:
        raise ValidationError()
    if not await repository.set_contact_seen(contact_id, is_seen=payload.is_contact_seen):
        raise NotFoundOrTransient("Contact not found")
    return {"message": "Contact updated"}


async def delete_contact(principal: Principal, contact_id: int) -> dict:
    policy.require(principal, "moderation:review")
    if not await repository.delete_contact(contact_id):
        raise NotFoundOrTransient("Contact not found")
    logger.info("contact_deleted id=%s by=%s", contact_id, principal.user_id)
    return {"message": "Contact deleted"}
