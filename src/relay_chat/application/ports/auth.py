from __future__ import annotations

from typing import Protocol


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the user id carried by ``token`` or raise AuthenticationError."""
        ...


class TokenIssuer(Protocol):
    def issue(self, user_id: str) -> str: ...


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str: ...

    def verify(self, password_hash: str, password: str) -> bool: ...
