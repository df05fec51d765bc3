"""Seed development data: creates the schema and the two demo users."""
from __future__ import annotations

import asyncio
import logging

from relay_chat.infrastructure.auth.passwords import Argon2PasswordHasher
from relay_chat.infrastructure.db.session import create_schema
from relay_chat.infrastructure.db.uow import sql_uow
from relay_chat.services import auth_service

logger = logging.getLogger(__name__)

DEMO_USERS = ("wale", "xiu")
DEMO_PASSWORD = "password123"


async def seed() -> None:
    await create_schema()
    hasher = Argon2PasswordHasher()
    async with sql_uow() as uow:
        for username in DEMO_USERS:
            if await uow.users.get_by_username(username) is not None:
                logger.info("User %s already exists", username)
                continue
            await auth_service.register(username, DEMO_PASSWORD, uow, hasher)
            logger.info("Created user %s", username)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
