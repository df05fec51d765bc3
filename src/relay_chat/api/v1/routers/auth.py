from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from relay_chat.api.deps import CurrentPrincipal, UoWDep, get_password_hasher, get_verifier
from relay_chat.api.v1.schemas.auth import LoginRequest, UserEnvelope, UserOut
from relay_chat.application.exceptions import AuthenticationError
from relay_chat.application.ports.auth import PasswordHasher
from relay_chat.config import settings
from relay_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from relay_chat.services import auth_service

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=UserEnvelope)
async def login(
    body: LoginRequest,
    response: Response,
    uow: UoWDep,
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    issuer: Annotated[HS256Verifier, Depends(get_verifier)],
) -> UserEnvelope:
    try:
        user, token = await auth_service.login(body.username, body.password, uow, hasher, issuer)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.detail) from exc

    # Readable from scripts: the relay handshake sends this token in its auth frame.
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        token,
        max_age=settings.JWT_TTL_SECONDS,
        httponly=False,
        secure=settings.AUTH_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    return UserEnvelope(user=UserOut(id=user.id, username=user.username))


@router.post("/logout")
async def logout(response: Response) -> dict[str, str]:
    response.delete_cookie(settings.AUTH_COOKIE_NAME, path="/")
    return {"message": "Logged out successfully"}


@router.get("/user", response_model=UserEnvelope)
async def current_user(principal: CurrentPrincipal, response: Response) -> UserEnvelope:
    response.headers["Cache-Control"] = "private, no-cache, no-store, must-revalidate"
    return UserEnvelope(user=UserOut(id=principal.user_id, username=principal.username))
