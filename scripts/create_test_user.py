"""Create the schema (if missing) and a dev account with a confirmed email."""
import asyncio

from gallery_accounts.db import SessionLocal, engine
from gallery_accounts.models import Base
from gallery_accounts.services.users import UserStore

USERNAME = "testuser"
EMAIL = "test@example.com"
PASSWORD = "Test@12345"


async def main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as session:
        store = UserStore(session)
        if await store.find_by_username(USERNAME):
            print("User already exists:", USERNAME)
            return

        user = await store.create_user(USERNAME, EMAIL, PASSWORD)
        await store.consume_confirmation_token(user, user.email_confirmation_token)
        print("Created user:", USERNAME, "api_key:", user.api_key)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
