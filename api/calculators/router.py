"""
Calculator API endpoints (mounted under /api/calculators).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import dependencies
from auth.principal import Principal
from core.pagination import ListParams, list_params

from . import schemas, service

router = APIRouter()


@router.get("")
async def list_verified() -> dict:
    return await service.list_verified()


@router.get("/all")
async def list_all(params: ListParams = Depends(list_params)) -> dict:
    return await service.list_all(params)


@router.get("/modular")
async def list_modular() -> dict:
    return await service.list_modular()


@router.get("/unverified")
async def list_unverified(
    params: ListParams = Depends(list_params),
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.list_unverified(principal, params)


@router.get("/monolithic/{slug}")
async def get_by_slug(slug: str) -> dict:
    return await service.get_calculator_by_slug(slug)


@router.post("/create")
async def create_calculator(
    payload: schemas.CalculatorRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.create_calculator(principal, payload)


@router.patch("/edit/{calc_id}")
async def edit_calculator(
    calc_id: int,
    payload: schemas.CalculatorRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.edit_calculator(principal, calc_id, payload)


@router.patch("/verify/{calc_id}")
async def verify_calculator(
    calc_id: int,
    payload: schemas.VerifyRequest,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.verify_calculator(principal, calc_id, payload)


@router.delete("/delete/{calc_id}")
async def delete_calculator(
    calc_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.delete_calculator(principal, calc_id)


@router.get("/{user_id}/saved")
async def list_saved(
    user_id: int,
    params: ListParams = Depends(list_params),
    principal: Principal | None = Depends(dependencies.optional_session),
) -> dict:
    return await service.list_saved(principal, user_id, params)


@router.get("/{user_id}/my-calculators")
async def list_by_author(user_id: int, params: ListParams = Depends(list_params)) -> dict:
    return await service.list_by_author(user_id, params)


@router.post("/{calc_id}/{user_id}/save")
async def save_calculator(
    calc_id: int,
    user_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.save_calculator(principal, calc_id, user_id)


@router.post("/{calc_id}/{user_id}/unSave")
async def unsave_calculator(
    calc_id: int,
    user_id: int,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    return await service.unsave_calculator(principal, calc_id, user_id)


@router.get("/{calc_id}")
async def get_calculator(calc_id: int) -> dict:
    return await service.get_calculator(calc_id)
