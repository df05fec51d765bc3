from __future__ import annotations

from typing import NewType

MessageId = NewType("MessageId", str)
UserId = NewType("UserId", str)
