"""WebSocket close codes shared by the relay and the client."""
from __future__ import annotations

from enum import IntEnum


class CloseCode(IntEnum):
    NORMAL = 1000
    GOING_AWAY = 1001
    AUTH_TOKEN_MISSING = 4000
    AUTH_TIMEOUT = 4001
    AUTH_UNKNOWN_USER = 4003
    AUTH_REJECTED = 4004
    NOT_AUTHENTICATED = 4005
    SLOW_CONSUMER = 4008


# A client seeing any of these must fall back to the login flow instead of
# reconnecting on its own.
NO_RECONNECT_CODES: frozenset[int] = frozenset(
    {
        CloseCode.NORMAL,
        CloseCode.AUTH_TOKEN_MISSING,
        CloseCode.AUTH_TIMEOUT,
        CloseCode.AUTH_UNKNOWN_USER,
        CloseCode.AUTH_REJECTED,
        CloseCode.NOT_AUTHENTICATED,
    }
)


def should_reconnect(code: int | None) -> bool:
    return code not in NO_RECONNECT_CODES
