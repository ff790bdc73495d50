"""
Comment business logic: threads, replies, likes and their notifications.
"""

from __future__ import annotations

import logging

from auth import policy
from auth.principal import Principal
from calculators import repository as calculators_repository
from calculators.service import author_summary, calculator_link
from core.errors import AuthError, NotFoundOrTransient, ValidationError
from core.pagination import ListParams, envelope

from . import repository, schemas

logger = logging.getLogger(__name__)


def _reply(row: dict) -> dict:
    return {
        "id": int(row["id"]),
        "author": author_summary(row),
        "text": row["text"],
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def to_comment(row: dict, replies: list[dict]) -> dict:
    return {
        "id": int(row["id"]),
        "calculatorId": int(row["calculator_id"]),
        "author": author_summary(row),
        "text": row["text"],
        "likes": [{"userId": str(uid)} for uid in row.get("like_user_ids") or []],
        "replies": [_reply(r) for r in replies],
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


async def _with_replies(rows: list[dict]) -> list[dict]:
    replies = await repository.list_replies([int(r["id"]) for r in rows])
    by_comment: dict[int, list[dict]] = {}
    for reply in replies:
        by_comment.setdefault(int(reply["comment_id"]), []).append(reply)
    return [to_comment(r, by_comment.get(int(r["id"]), [])) for r in rows]


async def _load_comment(comment_id: int) -> dict:
    row = await repository.get_comment(comment_id)
    if row is None:
        raise NotFoundOrTransient("Comment not found")
    return row


async def _comment_view(comment_id: int) -> dict:
    (comment,) = await _with_replies([await _load_comment(comment_id)])
    return comment


async def _calculator_for(calc_id: int) -> dict:
    found = await calculators_repository.get_calculator(calc_id)
    if found is None:
        raise NotFoundOrTransient("Calculator not found")
    return found


def _require_text(payload: schemas.CommentRequest) -> str:
    text = (payload.text or "").strip()
    if not text:
        raise ValidationError()
    return text


async def list_comments(calc_id: int, params: ListParams) -> dict:
    rows = await repository.list_comments(
        calc_id,
        sort=params.sort,
        limit=params.limit,
        offset=params.offset,
    )
    count = await repository.count_comments(calc_id)
    return envelope("comments", await _with_replies(rows), count=count, params=params)


async def create_comment(principal: Principal, calc_id: int, payload: schemas.CommentRequest) -> dict:
    text = _require_text(payload)
    found = await _calculator_for(calc_id)

    notification = None
    if not principal.owns(found["author_id"]):
        notification = {
            "user_id": int(found["author_id"]),
            "type": "comment",
            "text": f"You have a new comment on {found['title']}",
            "link": calculator_link(found["type"], found["id"], found["slug"]),
        }

    comment_id = await repository.create_comment(calc_id, principal.user_id, text, notification=notification)
    logger.info("comment_created id=%s calculator_id=%s author_id=%s", comment_id, calc_id, principal.user_id)
    return await _comment_view(comment_id)


async def reply_comment(principal: Principal, comment_id: int, payload: schemas.CommentRequest) -> dict:
    text = _require_text(payload)
    comment = await _load_comment(comment_id)
    found = await _calculator_for(int(comment["calculator_id"]))

    notification = None
    if not principal.owns(comment["author_id"]):
        notification = {
            "user_id": int(comment["author_id"]),
            "type": "reply",
            "text": f"You have a new reply on {comment['text']}",
            "link": calculator_link(found["type"], found["id"], found["slug"]),
        }

    await repository.create_reply(comment_id, principal.user_id, text, notification=notification)
    return await _comment_view(comment_id)


async def like_comment(principal: Principal, comment_id: int) -> dict:
    comment = await _load_comment(comment_id)
    found = await _calculator_for(int(comment["calculator_id"]))

    notification = None
    if not principal.owns(comment["author_id"]):
        notification = {
            "user_id": int(comment["author_id"]),
            "type": "like",
            "text": "You have a new like on your comment",
            "link": calculator_link(found["type"], found["id"], found["slug"]),
        }

    if not await repository.like_comment(comment_id, principal.user_id, notification=notification):
        raise AuthError("You already liked this comment")
    return await _comment_view(comment_id)


async def unlike_comment(principal: Principal, comment_id: int) -> dict:
    await _load_comment(comment_id)
    await repository.unlike_comment(comment_id, principal.user_id)
    return await _comment_view(comment_id)


async def delete_comment(principal: Principal, comment_id: int) -> dict:
    comment = await _load_comment(comment_id)
    policy.require(principal, "comment:delete", owner_id=comment["author_id"])

    if not await repository.delete_comment(comment_id):
        raise NotFoundOrTransient("Comment not found")

    logger.info("comment_deleted id=%s by=%s", comment_id, principal.user_id)
    return {"message": "Comment removed"}


async def delete_reply(principal: Principal, comment_id: int, reply_id: int) -> dict:
    comment = await _load_comment(comment_id)
    policy.require(principal, "reply:delete", owner_id=comment["author_id"])

    if not await repository.delete_reply(comment_id, reply_id):
        raise NotFoundOrTransient("Reply not found")
    return {"message": "Reply removed"}
