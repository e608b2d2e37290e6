"""
Balance ledger operations.

An account's ``balance`` is a cached aggregate: it must always equal the
signed sum of the account's transactions (+amount for INCOME, -amount for
EXPENSE). Every path that inserts, changes or removes a transaction lives in
this module and applies the matching balance delta in the same database
transaction, using an atomic ``balance = balance + :delta`` update so that
concurrent writers on one account cannot lose each other's deltas.

No other module may write ``Account.balance`` once the account exists.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from welth.core.exceptions import NotFoundError
from welth.models.account import Account
from welth.models.transaction import (
    RecurringInterval,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from welth.models.user import User
from welth.schemas.transaction import TransactionDraft
from welth.services.recurrence import calculate_next_recurring_date, is_transaction_due

logger = structlog.get_logger(__name__)

RECURRING_SUFFIX = " (Recurring)"


def signed_amount(tx_type, amount) -> Decimal:
    """Contribution of a transaction to its account balance."""
    amount = Decimal(amount)
    return -amount if TransactionType(tx_type) == TransactionType.EXPENSE else amount


async def _apply_balance_delta(db: AsyncSession, account_id: UUID, delta: Decimal) -> None:
    if delta == 0:
        return
    await db.execute(
        update(Account)
        .where(Account.id == account_id)
        .values(balance=Account.balance + delta)
    )


async def _get_owned_account(db: AsyncSession, user: User, account_id: UUID) -> Account:
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id, Account.user_id == user.id)
        .with_for_update()
    )
    account = result.scalar_one_or_none()
    if not account:
        raise NotFoundError("Account not found")
    return account


async def _lock_account_pair(
    db: AsyncSession,
    user: User,
    source_id: UUID,
    target_id: UUID,
) -> None:
    """Lock both accounts of a move in one statement, ordered by id.

    Raises NotFoundError when the target is not one of the caller's accounts.
    """
    result = await db.execute(
        select(Account.id)
        .where(Account.id.in_([source_id, target_id]), Account.user_id == user.id)
        .order_by(Account.id)
        .with_for_update()
    )
    if target_id not in set(result.scalars().all()):
        raise NotFoundError("Account not found")


def _next_date_for(draft: TransactionDraft) -> Optional[datetime]:
    if draft.is_recurring and draft.recurring_interval:
        return calculate_next_recurring_date(draft.date, draft.recurring_interval)
    return None


def _apply_draft(tx: Transaction, draft: TransactionDraft) -> None:
    tx.type = TransactionType(draft.type.value)
    tx.amount = draft.amount
    tx.description = draft.description
    tx.date = draft.date
    tx.account_id = draft.account_id
    tx.category = draft.category.lower()
    tx.receipt_url = draft.receipt_url
    tx.is_recurring = draft.is_recurring
    tx.recurring_interval = (
        RecurringInterval(draft.recurring_interval.value)
        if draft.is_recurring and draft.recurring_interval
        else None
    )
    tx.next_recurring_date = _next_date_for(draft)


async def create_transaction(
    db: AsyncSession,
    user: User,
    draft: TransactionDraft,
) -> Transaction:
    """Insert a transaction and apply its signed amount to the account."""
    account = await _get_owned_account(db, user, draft.account_id)

    tx = Transaction(user_id=user.id, status=TransactionStatus.COMPLETED)
    _apply_draft(tx, draft)
    db.add(tx)

    delta = signed_amount(tx.type, tx.amount)
    await _apply_balance_delta(db, account.id, delta)

    await db.commit()
    await db.refresh(tx)

    logger.info(
        "transaction_created",
        transaction_id=str(tx.id),
        account_id=str(account.id),
        balance_change=str(delta),
    )
    return tx


async def get_transaction(db: AsyncSession, user: User, transaction_id: UUID) -> Transaction:
    result = await db.execute(
        select(Transaction).where(
            Transaction.id == transaction_id,
            Transaction.user_id == user.id,
        )
    )
    tx = result.scalar_one_or_none()
    if not tx:
        raise NotFoundError("Transaction not found")
    return tx


async def update_transaction(
    db: AsyncSession,
    user: User,
    transaction_id: UUID,
    draft: TransactionDraft,
) -> Transaction:
    """Replace a transaction and move the balance by the signed difference.

    When the replacement points at another account, the old contribution is
    retracted from the old account and the new one applied to the new account.
    """
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id, Transaction.user_id == user.id)
        .with_for_update()
    )
    tx = result.scalar_one_or_none()
    if not tx:
        raise NotFoundError("Transaction not found")

    old_account_id = tx.account_id
    old_signed = signed_amount(tx.type, tx.amount)
    new_signed = signed_amount(draft.type.value, draft.amount)

    if draft.account_id != old_account_id:
        await _lock_account_pair(db, user, old_account_id, draft.account_id)

    _apply_draft(tx, draft)

    if draft.account_id == old_account_id:
        await _apply_balance_delta(db, old_account_id, new_signed - old_signed)
    else:
        await _apply_balance_delta(db, old_account_id, -old_signed)
        await _apply_balance_delta(db, draft.account_id, new_signed)

    await db.commit()
    await db.refresh(tx)

    logger.info(
        "transaction_updated",
        transaction_id=str(tx.id),
        net_balance_change=str(new_signed - old_signed),
    )
    return tx


async def bulk_delete_transactions(
    db: AsyncSession,
    user: User,
    transaction_ids: Iterable[UUID],
) -> int:
    """Delete the caller's transactions among ``transaction_ids``.

    Ids that do not resolve to one of the caller's transactions are dropped
    without error. Each affected account gets one net balance update.
    Returns the number of rows deleted.
    """
    ids = list(dict.fromkeys(transaction_ids))
    if not ids:
        return 0

    result = await db.execute(
        select(Transaction)
        .where(Transaction.id.in_(ids), Transaction.user_id == user.id)
        .with_for_update()
    )
    transactions = result.scalars().all()

    logger.debug(
        "bulk_delete_requested",
        requested=len(ids),
        found=len(transactions),
    )

    if not transactions:
        return 0

    account_changes: dict[UUID, Decimal] = defaultdict(Decimal)
    for tx in transactions:
        # Removing an expense gives the money back, removing income takes it away
        account_changes[tx.account_id] -= signed_amount(tx.type, tx.amount)

    deleted = await db.execute(
        delete(Transaction).where(
            Transaction.id.in_([tx.id for tx in transactions]),
            Transaction.user_id == user.id,
        )
    )

    for account_id in sorted(account_changes, key=str):
        await _apply_balance_delta(db, account_id, account_changes[account_id])

    await db.commit()

    deleted_count = deleted.rowcount
    logger.info(
        "transactions_deleted",
        deleted_count=deleted_count,
        account_changes={str(k): str(v) for k, v in account_changes.items()},
    )
    return deleted_count


async def delete_transaction(db: AsyncSession, user: User, transaction_id: UUID) -> None:
    deleted = await bulk_delete_transactions(db, user, [transaction_id])
    if deleted == 0:
        raise NotFoundError("Transaction not found")


async def post_recurring_transaction(
    db: AsyncSession,
    transaction_id: UUID,
    now: Optional[datetime] = None,
) -> Optional[Transaction]:
    """Post one occurrence of a recurring template if it is due.

    Returns the generated transaction, or None when the template is gone,
    no longer recurring, or not yet due.
    """
    now = now or datetime.utcnow()

    result = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id).with_for_update()
    )
    template = result.scalar_one_or_none()

    if not template or not is_transaction_due(template, now):
        logger.info("recurring_transaction_skipped", transaction_id=str(transaction_id))
        return None

    posted = Transaction(
        user_id=template.user_id,
        account_id=template.account_id,
        type=template.type,
        amount=template.amount,
        description=f"{template.description or ''}{RECURRING_SUFFIX}".strip(),
        date=now,
        category=template.category,
        is_recurring=False,
        status=TransactionStatus.COMPLETED,
    )
    db.add(posted)

    await _apply_balance_delta(
        db, template.account_id, signed_amount(template.type, template.amount)
    )

    template.last_processed = now
    template.next_recurring_date = calculate_next_recurring_date(
        now, template.recurring_interval
    )

    await db.commit()
    await db.refresh(posted)

    logger.info(
        "recurring_transaction_posted",
        template_id=str(template.id),
        transaction_id=str(posted.id),
        next_recurring_date=template.next_recurring_date.isoformat(),
    )
    return posted


def due_recurring_transactions_query(now: Optional[datetime] = None):
    """Select statement for every recurring template that is due at ``now``."""
    now = now or datetime.utcnow()
    return select(Transaction).where(
        Transaction.is_recurring.is_(True),
        Transaction.status == TransactionStatus.COMPLETED,
        or_(
            Transaction.last_processed.is_(None),
            Transaction.next_recurring_date <= now,
        ),
    )


async def reconcile_account_balance(db: AsyncSession, account_id: UUID) -> Decimal:
    """Recompute the cached balance from the account's transactions.

    Runs inside the caller's database transaction; the caller commits.
    """
    signed = case(
        (Transaction.type == TransactionType.EXPENSE, -Transaction.amount),
        else_=Transaction.amount,
    )
    result = await db.execute(
        select(func.coalesce(func.sum(signed), 0)).where(Transaction.account_id == account_id)
    )
    balance = Decimal(str(result.scalar())).quantize(Decimal("0.01"))
    await db.execute(
        update(Account).where(Account.id == account_id).values(balance=balance)
    )
    return balance
