"""
Calculator business logic: listing, authoring, verification and saves.
"""

from __future__ import annotations

import logging

import asyncpg

from auth import policy
from auth import repository as auth_repository
from auth.principal import Principal
from core.errors import AuthError, NotFoundOrTransient, PersistenceError, ValidationError, conflict
from core.pagination import ListParams, envelope

from . import repository, schemas

logger = logging.getLogger(__name__)

CALCULATOR_TYPES = ("modular", "monolithic")
SLUG_TAKEN = "There is a calculator with this name please choose different name"
TOO_MANY_INPUTS = "More than 6 input is not allowed"


def slugify(title: str) -> str:
    return title.strip().replace(" ", "-").lower()


def calculator_link(calc_type: str, calc_id: int, slug: str) -> str:
    return f"/{calc_type}/{calc_id if calc_type == 'modular' else slug}"


def author_summary(row: dict) -> dict | None:
    # Author rows may be gone; calculators keep a dangling id.
    if row.get("author_username") is None:
        return None
    return {
        "id": int(row["author_id"]),
        "username": row["author_username"],
        "avatar": row.get("author_avatar"),
        "profession": row.get("author_profession"),
        "company": row.get("author_company"),
    }


def to_calculator(row: dict) -> dict:
    return {
        "id": int(row["id"]),
        "title": row["title"],
        "slug": row["slug"],
        "description": row["description"],
        "category": row["category"],
        "type": row["type"],
        "info": row["info"],
        "isInfoMarkdown": bool(row["is_info_markdown"]),
        "formula": row["formula"],
        "formulaVariables": row.get("formula_variables") or [],
        "inputLength": row.get("input_length") or 0,
        "inputLabels": row.get("input_labels") or {},
        "inputSelects": row.get("input_selects") or {},
        "isVerified": bool(row["is_verified"]),
        "author": author_summary(row),
        "savedUsers": [{"userId": str(uid)} for uid in row.get("saved_user_ids") or []],
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def _check_input_count(payload: schemas.CalculatorRequest) -> None:
    if (payload.input_length or 0) > schemas.MAX_INPUTS or payload.input_label_count() > schemas.MAX_INPUTS:
        raise conflict(TOO_MANY_INPUTS)


def _strip_formula(formula: str | None) -> str | None:
    if formula is None:
        return None
    return formula.replace(" ", "")


async def _load_calculator(calc_id: int) -> dict:
    row = await repository.get_calculator(calc_id)
    if row is None:
        raise NotFoundOrTransient("Calculator not found")
    return row


async def list_verified() -> dict:
    rows = await repository.list_calculators(verified=True)
    return {"calculators": [to_calculator(r) for r in rows]}


async def list_modular() -> dict:
    rows = await repository.list_calculators(calc_type="modular")
    return {"calculators": [to_calculator(r) for r in rows]}


async def _paginated(params: ListParams, **filters) -> dict:
    filters = {"search": params.search, "tag": params.tag, **filters}
    rows = await repository.list_calculators(
        sort=params.sort,
        limit=params.limit,
        offset=params.offset,
        **filters,
    )
    count = await repository.count_calculators(**filters)
    return envelope("calculators", [to_calculator(r) for r in rows], count=count, params=params)


async def list_all(params: ListParams) -> dict:
    return await _paginated(params, verified=True)


async def list_unverified(principal: Principal, params: ListParams) -> dict:
    policy.require(principal, "calculator:review", detail="You are not authorized to view this page")
    return await _paginated(params, verified=False)


async def list_saved(principal: Principal | None, user_id: int, params: ListParams) -> dict:
    user_row = await auth_repository.get_user_by_id(user_id)
    if user_row is None:
        raise NotFoundOrTransient("User not found")
    policy.require(
        principal,
        "user:view-saved",
        owner_id=user_row["id"],
        show_saved_calculators=bool(user_row.get("show_saved_calculators")),
    )
    return await _paginated(params, saved_by=user_id)


async def list_by_author(user_id: int, params: ListParams) -> dict:
    return await _paginated(params, author_id=user_id)


async def get_calculator(calc_id: int) -> dict:
    return to_calculator(await _load_calculator(calc_id))


async def get_calculator_by_slug(slug: str) -> dict:
    row = await repository.get_calculator_by_slug(slug)
    if row is None:
        raise NotFoundOrTransient("Calculator not found")
    return to_calculator(row)


async def create_calculator(principal: Principal, payload: schemas.CalculatorRequest) -> dict:
    _check_input_count(payload)
    if not payload.title or not payload.description or not payload.category or not payload.info:
        raise ValidationError()

    calc_type = payload.type or "modular"
    if calc_type not in CALCULATOR_TYPES:
        raise ValidationError("Invalid calculator type")

    slug = (payload.slug or "").strip() or slugify(payload.title)
    if await repository.slug_taken(slug):
        raise conflict(SLUG_TAKEN)

    try:
        created = await repository.create_calculator(
            author_id=principal.user_id,
            title=payload.title,
            slug=slug,
            description=payload.description,
            category=payload.category,
            type=calc_type,
            info=payload.info,
            is_info_markdown=bool(payload.is_info_markdown),
            formula=_strip_formula(payload.formula) or "",
            formula_variables=payload.formula_variables or [],
            input_length=payload.input_length or 0,
            input_labels=payload.input_labels or {},
            input_selects=payload.input_selects or {},
        )
    except asyncpg.UniqueViolationError as exc:
        raise conflict(SLUG_TAKEN) from exc
    except (asyncpg.PostgresError, RuntimeError) as exc:
        logger.exception("calculator_create_failed author_id=%s", principal.user_id)
        raise PersistenceError("Creating calculator is failed, please try again") from exc

    logger.info("calculator_created id=%s author_id=%s", created["id"], principal.user_id)
    return {
        "title": created["title"],
        "formula": created["formula"],
        "link": calculator_link(created["type"], created["id"], created["slug"]),
    }


async def edit_calculator(principal: Principal, calc_id: int, payload: schemas.CalculatorRequest) -> dict:
    _check_input_count(payload)
    found = await _load_calculator(calc_id)
    policy.require(principal, "calculator:edit", owner_id=found["author_id"])

    slug = None
    if payload.title:
        slug = slugify(payload.title)
        if await repository.slug_taken(slug, exclude_id=calc_id):
            raise conflict(SLUG_TAKEN)

    try:
        updated = await repository.update_calculator(
            calc_id,
            title=payload.title or None,
            slug=slug,
            description=payload.description or None,
            category=payload.category or None,
            info=payload.info or None,
            is_info_markdown=payload.is_info_markdown,
            formula=_strip_formula(payload.formula),
            formula_variables=payload.formula_variables,
            input_length=payload.input_length,
            input_labels=payload.input_labels,
            input_selects=payload.input_selects,
        )
    except asyncpg.UniqueViolationError as exc:
        raise conflict(SLUG_TAKEN) from exc
    if updated is None:
        raise NotFoundOrTransient("Calculator not found")

    return {
        "title": updated["title"],
        "formula": updated["formula"],
        "link": calculator_link(updated["type"], updated["id"], updated["slug"]),
    }


async def verify_calculator(principal: Principal, calc_id: int, payload: schemas.VerifyRequest) -> dict:
    policy.require(principal, "calculator:verify")
    if payload.is_verified is None:
        raise ValidationError()
    if not await repository.set_verified(calc_id, is_verified=payload.is_verified):
        raise NotFoundOrTransient("Calculator not found")

    logger.info("calculator_verified id=%s verified=%s by=%s", calc_id, payload.is_verified, principal.user_id)
    return {"message": "Verification status changed"}


async def delete_calculator(principal: Principal, calc_id: int) -> dict:
    found = await _load_calculator(calc_id)
    policy.require(principal, "calculator:delete", owner_id=found["author_id"])

    if not await repository.delete_calculator(calc_id):
        raise NotFoundOrTransient("Calculator not found")

    logger.info("calculator_deleted id=%s by=%s", calc_id, principal.user_id)
    return {"message": "Calculator is deleted"}


async def save_calculator(principal: Principal, calc_id: int, user_id: int) -> dict:
    policy.require(principal, "user:save", owner_id=user_id)
    found = await _load_calculator(calc_id)

    notification = None
    if not principal.owns(found["author_id"]):
        notification = {
            "user_id": int(found["author_id"]),
            "type": "save",
            "text": f"Your calculator {found['title']} was saved",
            "link": calculator_link(found["type"], found["id"], found["slug"]),
        }

    if not await repository.save_calculator(calc_id, principal.user_id, notification=notification):
        raise AuthError("User already exists in saved users list")

    return {"message": "Calculator saved", "calculators": await get_calculator(calc_id)}


async def unsave_calculator(principal: Principal, calc_id: int, user_id: int) -> dict:
    policy.require(principal, "user:save", owner_id=user_id)
    await _load_calculator(calc_id)
    await repository.unsave_calculator(calc_id, principal.user_id)
    return {"message": "User unsaved", "calculators": await get_calculator(calc_id)}
