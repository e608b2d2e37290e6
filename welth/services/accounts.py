from decimal import Decimal, InvalidOperation
from typing import List, Tuple
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from welth.core.exceptions import NotFoundError, ValidationError
from welth.models.account import Account, AccountType
from welth.models.transaction import Transaction
from welth.models.user import User
from welth.schemas.account import AccountCreate

logger = structlog.get_logger(__name__)


def parse_balance(raw: str) -> Decimal:
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid balance amount")
    if not value.is_finite():
        raise ValidationError("Invalid balance amount")
    return value.quantize(Decimal("0.01"))


async def _unset_default_accounts(db: AsyncSession, user_id: UUID) -> None:
    await db.execute(
        update(Account)
        .where(Account.user_id == user_id, Account.is_default.is_(True))
        .values(is_default=False)
    )


async def create_account(db: AsyncSession, user: User, data: AccountCreate) -> Account:
    """Create an account; the user's first account is always the default."""
    balance = parse_balance(data.balance)

    count_result = await db.execute(
        select(func.count(Account.id)).where(Account.user_id == user.id)
    )
    should_be_default = count_result.scalar() == 0 or data.is_default

    if should_be_default:
        await _unset_default_accounts(db, user.id)

    account = Account(
        user_id=user.id,
        name=data.name,
        type=AccountType(data.type.value),
        balance=balance,
        is_default=should_be_default,
    )
    db.add(account)
    await db.commit()
    await db.refresh(account)

    logger.info("account_created", account_id=str(account.id), is_default=should_be_default)
    return account


async def get_user_accounts(db: AsyncSession, user: User) -> List[Tuple[Account, int]]:
    """All accounts of the user, newest first, with their transaction counts."""
    tx_count = (
        select(Transaction.account_id, func.count(Transaction.id).label("count"))
        .group_by(Transaction.account_id)
        .subquery()
    )
    result = await db.execute(
        select(Account, func.coalesce(tx_count.c.count, 0))
        .outerjoin(tx_count, tx_count.c.account_id == Account.id)
        .where(Account.user_id == user.id)
        .order_by(Account.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return [(account, count) for account, count in result.all()]


async def get_account_with_transactions(
    db: AsyncSession,
    user: User,
    account_id: UUID,
) -> Tuple[Account, List[Transaction]]:
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id, Account.user_id == user.id)
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise NotFoundError("Account not found")

    tx_result = await db.execute(
        select(Transaction)
        .where(Transaction.account_id == account.id)
        .order_by(Transaction.date.desc())
    )
    return account, list(tx_result.scalars().all())


async def update_default_account(db: AsyncSession, user: User, account_id: UUID) -> Account:
    """Make ``account_id`` the user's only default account."""
    result = await db.execute(
        select(Account).where(Account.id == account_id, Account.user_id == user.id)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise NotFoundError("Account not found")

    await _unset_default_accounts(db, user.id)
    account.is_default = True

    await db.commit()
    await db.refresh(account)

    logger.info("default_account_changed", account_id=str(account.id))
    return account
