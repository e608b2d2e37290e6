"""
Shared fixtures.

Service and API tests run against an in-memory SQLite database through
aiosqlite; external collaborators (Gemini, Resend, Inngest) are never
called for real.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from welth.core.config import settings
from welth.core.database import Base
from welth.models import Account, AccountType, Budget, User
from welth.services.email_service import EmailResult


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _make_user(db: AsyncSession, email: str, name: str) -> User:
    user = User(clerk_user_id=f"user_{uuid4().hex}", email=email, name=name)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def user(db):
    return await _make_user(db, "jordan@example.com", "Jordan Lee")


@pytest.fixture
async def other_user(db):
    return await _make_user(db, "sam@example.com", "Sam Park")


@pytest.fixture
def make_account(db):
    async def _make(
        owner: User,
        balance: str = "0.00",
        name: str = "Checking",
        is_default: bool = True,
    ) -> Account:
        account = Account(
            user_id=owner.id,
            name=name,
            type=AccountType.CURRENT,
            balance=Decimal(balance),
            is_default=is_default,
        )
        db.add(account)
        await db.commit()
        await db.refresh(account)
        return account

    return _make


@pytest.fixture
def make_budget(db):
    async def _make(owner: User, amount: str, last_alert_sent: Optional[datetime] = None) -> Budget:
        budget = Budget(user_id=owner.id, amount=Decimal(amount), last_alert_sent=last_alert_sent)
        db.add(budget)
        await db.commit()
        await db.refresh(budget)
        return budget

    return _make


async def current_balance(db: AsyncSession, account: Account) -> Decimal:
    await db.refresh(account)
    return Decimal(account.balance)


class FakeEmailService:
    """Records every send; ``fail=True`` makes every send fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send_email(self, to, subject, template, data) -> EmailResult:
        if self.fail:
            return EmailResult(success=False, error="provider unavailable")
        self.sent.append({"to": to, "subject": subject, "template": template, "data": data})
        return EmailResult(success=True, id=f"email_{len(self.sent)}")


@pytest.fixture
def emailer():
    return FakeEmailService()


def session_token(
    subject: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    expires_in: timedelta = timedelta(minutes=5),
) -> str:
    claims = {"sub": subject, "exp": datetime.utcnow() + expires_in}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    return jwt.encode(claims, settings.AUTH_SECRET_KEY, algorithm=settings.AUTH_ALGORITHM)
