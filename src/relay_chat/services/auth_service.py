from __future__ import annotations

import logging

from relay_chat.application.dto.principal import Principal
from relay_chat.application.exceptions import AuthenticationError, UnknownUserError
from relay_chat.application.ports.auth import PasswordHasher, TokenIssuer, TokenVerifier
from relay_chat.application.uow import UnitOfWork
from relay_chat.domain.entities.user import User
from relay_chat.infrastructure.auth.passwords import DUMMY_HASH
from relay_chat.infrastructure.cache.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


async def login(
    username: str,
    password: str,
    uow: UnitOfWork,
    hasher: PasswordHasher,
    issuer: TokenIssuer,
) -> tuple[User, str]:
    """Check credentials and return the user with a fresh session token."""
    user = await uow.users.get_by_username(username.lower())
    if user is None:
        hasher.verify(DUMMY_HASH, password)
        raise AuthenticationError("Invalid credentials")
    if not hasher.verify(user.password_hash, password):
        raise AuthenticationError("Invalid credentials")
    logger.info("User %s logged in", user.username)
    return user, issuer.issue(user.id)


async def register(username: str, password: str, uow: UnitOfWork, hasher: PasswordHasher) -> User:
    user = await uow.users.create(username.lower(), hasher.hash(password))
    await uow.commit()
    return user


async def resolve_principal(
    token: str,
    verifier: TokenVerifier,
    uow: UnitOfWork,
    cache: TTLCache[str, Principal] | None = None,
) -> Principal:
    """Map a session token to the user it was issued for.

    Raises AuthenticationError for a bad token and UnknownUserError when the
    token is fine but the user is gone.
    """
    user_id = await verifier.verify(token)
    if cache is not None:
        cached = cache.get(user_id)
        if cached is not None:
            return cached

    user = await uow.users.get_by_id(user_id)
    if user is None:
        if cache is not None:
            cache.invalidate(user_id)
        raise UnknownUserError("Invalid session")

    principal = Principal(user_id=user.id, username=user.username)
    if cache is not None:
        cache.put(user_id, principal)
    return principal
