"""
Auth API endpoints (mounted under /api/auth).

No `from __future__ import annotations` here: slowapi wraps the limited
endpoints and FastAPI resolves their annotations through the wrapper.
"""

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from core.ratelimit import client_address, limit_value, limiter

from . import dependencies, schemas, service
from .cookies import REFRESH_COOKIE, clear_refresh_cookie, set_refresh_cookie
from .principal import Principal

router = APIRouter()


def respond_with_session(response: Response, session: service.IssuedSession) -> schemas.SessionResponse:
    set_refresh_cookie(response, session.refresh_token)
    return session.body()


@router.post("/register")
@limiter.shared_limit(limit_value(), scope="auth")
async def register(
    payload: schemas.RegisterRequest,
    request: Request,
    response: Response,
) -> schemas.SessionResponse:
    session = await service.register(payload, ip_address=client_address(request))
    return respond_with_session(response, session)


@router.post("/login")
@limiter.shared_limit(limit_value(), scope="auth")
async def login(
    payload: schemas.LoginRequest,
    request: Request,
    response: Response,
) -> schemas.SessionResponse:
    session = await service.login(payload, ip_address=client_address(request))
    return respond_with_session(response, session)


@router.post("/access")
@limiter.shared_limit(limit_value(), scope="auth")
async def access_login(
    payload: schemas.AccessLoginRequest,
    request: Request,
    response: Response,
) -> schemas.SessionResponse:
    session = await service.access_login(payload, ip_address=client_address(request))
    return respond_with_session(response, session)


@router.post("/googleLogin")
@limiter.shared_limit(limit_value(), scope="auth")
async def google_login(
    payload: schemas.GoogleLoginRequest,
    request: Request,
    response: Response,
) -> schemas.SessionResponse:
    session = await service.google_login(payload, ip_address=client_address(request))
    return respond_with_session(response, session)


@router.get("/refresh")
async def refresh(
    request: Request,
    principal: Principal = Depends(dependencies.require_session),
) -> schemas.AccessTokenResponse:
    return await service.refresh_access_token(principal, ip_address=client_address(request))


@router.post("/logout")
async def logout(request: Request) -> Response:
    if not request.cookies.get(REFRESH_COOKIE):
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    response = JSONResponse({"message": "Cookie cleared"})
    clear_refresh_cookie(response)
    return response


@router.post("/logout-all")
async def logout_all(
    response: Response,
    principal: Principal = Depends(dependencies.require_session),
) -> dict:
    await service.revoke_all_sessions(principal)
    clear_refresh_cookie(response)
    return {"message": "All sessions revoked"}


@router.get("/me")
async def me(principal: Principal = Depends(dependencies.require_bearer)) -> dict:
    return {"user": principal.snapshot}


@router.post("/forgot-password")
@limiter.shared_limit(limit_value(), scope="auth")
async def forgot_password(payload: schemas.ForgotPasswordRequest, request: Request) -> dict:
    return await service.send_password_reset(payload)


@router.put("/reset-password")
@limiter.shared_limit(limit_value(), scope="auth")
async def reset_password(
    payload: schemas.ResetPasswordRequest,
    request: Request,
    response: Response,
) -> schemas.SessionResponse:
    session = await service.reset_password(payload, ip_address=client_address(request))
    return respond_with_session(response, session)
