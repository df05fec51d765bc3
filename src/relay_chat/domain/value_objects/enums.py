from __future__ import annotations

from enum import StrEnum


class DeliveryStatus(StrEnum):
    SENT = "sent"
    DELIVERED = "delivered"
    SEEN = "seen"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting-auth"
    AUTHENTICATED = "authenticated"
