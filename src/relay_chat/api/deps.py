"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from relay_chat.application.dto.principal import Principal
from relay_chat.application.exceptions import AuthenticationError
from relay_chat.application.ports.auth import PasswordHasher, TokenVerifier
from relay_chat.application.uow import UnitOfWork, UoWFactory
from relay_chat.config import settings
from relay_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from relay_chat.infrastructure.auth.passwords import Argon2PasswordHasher
from relay_chat.infrastructure.cache.ttl_cache import TTLCache
from relay_chat.infrastructure.db.uow import sql_uow
from relay_chat.infrastructure.ws.registry import ConnectionRegistry
from relay_chat.services import auth_service

_bearer_scheme = HTTPBearer(auto_error=False)


def get_uow_factory() -> UoWFactory:
    return sql_uow


async def get_uow(
    factory: Annotated[UoWFactory, Depends(get_uow_factory)],
) -> AsyncIterator[UnitOfWork]:
    async with factory() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]
UoWFactoryDep = Annotated[UoWFactory, Depends(get_uow_factory)]


_verifier: HS256Verifier | None = None


def get_verifier() -> HS256Verifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM, settings.JWT_TTL_SECONDS)
    return _verifier


def get_password_hasher() -> PasswordHasher:
    return Argon2PasswordHasher()


def get_registry(conn: HTTPConnection) -> ConnectionRegistry:
    return conn.app.state.registry


def get_principal_cache(conn: HTTPConnection) -> TTLCache[str, Principal]:
    return conn.app.state.principal_cache


VerifierDep = Annotated[TokenVerifier, Depends(get_verifier)]
RegistryDep = Annotated[ConnectionRegistry, Depends(get_registry)]
PrincipalCacheDep = Annotated[TTLCache[str, Principal], Depends(get_principal_cache)]


def extract_token(conn: HTTPConnection, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    token = conn.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    if credentials is not None:
        return credentials.credentials
    return None


async def get_current_principal(
    conn: HTTPConnection,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    verifier: VerifierDep,
    uow: UoWDep,
    cache: PrincipalCacheDep,
) -> Principal:
    token = extract_token(conn, credentials)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return await auth_service.resolve_principal(token, verifier, uow, cache)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
