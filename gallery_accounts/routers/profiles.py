from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gallery_accounts.db import get_session
from gallery_accounts.deps.accounts import get_user_store
from gallery_accounts.errors import AccountNotFound
from gallery_accounts.services.gallery import public_profile
from gallery_accounts.services.users import UserStore

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/{username}")
async def profile(
    username: str,
    session: AsyncSession = Depends(get_session),
    users: UserStore = Depends(get_user_store),
):
    user = await users.find_by_username(username)
    if user is None:
        raise AccountNotFound()
    return await public_profile(session, user)
