from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from welth.core.database import get_db
from welth.core.exceptions import UnauthorizedError
from welth.core.security import AuthIdentity, decode_session_token
from welth.models.user import User
from welth.services.rate_limiter import TokenBucketRateLimiter, transaction_rate_limiter

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_or_create_user(db: AsyncSession, identity: AuthIdentity) -> User:
    """Local user row for an authenticated identity, created on first sight."""
    result = await db.execute(select(User).where(User.clerk_user_id == identity.subject))
    user = result.scalar_one_or_none()
    if user:
        return user

    if not identity.email:
        raise UnauthorizedError("Session token carries no email address")

    user = User(
        clerk_user_id=identity.subject,
        email=identity.email,
        name=identity.name,
        image_url=identity.image_url,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent first request created it
        await db.rollback()
        result = await db.execute(select(User).where(User.clerk_user_id == identity.subject))
        return result.scalar_one()

    await db.refresh(user)
    logger.info("user_created", user_id=str(user.id))
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise UnauthorizedError("Unauthorized")
    identity = decode_session_token(credentials.credentials)
    return await get_or_create_user(db, identity)


def get_rate_limiter() -> TokenBucketRateLimiter:
    return transaction_rate_limiter
