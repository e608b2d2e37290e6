"""Sample data for trying the app out: ~90 days of transactions."""

import random
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from welth.core.exceptions import NotFoundError
from welth.models.account import Account
from welth.models.transaction import Transaction, TransactionStatus, TransactionType
from welth.models.user import User
from welth.services.ledger import reconcile_account_balance

logger = structlog.get_logger(__name__)

SEED_DAYS = 90

CATEGORIES: Dict[TransactionType, List[Tuple[str, int, int]]] = {
    TransactionType.INCOME: [
        ("salary", 5000, 8000),
        ("freelance", 1000, 3000),
        ("investments", 500, 2000),
        ("other-income", 100, 1000),
    ],
    TransactionType.EXPENSE: [
        ("housing", 1000, 2000),
        ("transportation", 100, 500),
        ("groceries", 200, 600),
        ("utilities", 100, 300),
        ("entertainment", 50, 200),
        ("food", 50, 150),
        ("shopping", 100, 500),
        ("healthcare", 100, 1000),
        ("education", 200, 1000),
        ("travel", 500, 2000),
    ],
}


def _random_entry(rng: random.Random, tx_type: TransactionType) -> Tuple[str, Decimal]:
    name, low, high = rng.choice(CATEGORIES[tx_type])
    amount = Decimal(str(round(rng.uniform(low, high), 2))).quantize(Decimal("0.01"))
    return name, amount


def generate_transactions(
    user_id,
    account_id,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[Transaction]:
    now = now or datetime.utcnow()
    rng = rng or random.Random()

    transactions = []
    for day in range(SEED_DAYS, -1, -1):
        date = now - timedelta(days=day)
        for _ in range(rng.randint(1, 3)):
            # Roughly two expenses for every income
            tx_type = TransactionType.INCOME if rng.random() < 0.4 else TransactionType.EXPENSE
            category, amount = _random_entry(rng, tx_type)
            transactions.append(
                Transaction(
                    user_id=user_id,
                    account_id=account_id,
                    type=tx_type,
                    amount=amount,
                    description=f"{'Received' if tx_type == TransactionType.INCOME else 'Paid for'} {category}",
                    date=date,
                    category=category,
                    status=TransactionStatus.COMPLETED,
                )
            )
    return transactions


async def seed_transactions(
    db: AsyncSession,
    user: User,
    rng: Optional[random.Random] = None,
) -> Tuple[int, Decimal]:
    """Replace the default account's transactions with generated ones.

    Returns the number of transactions created and the resulting balance.
    """
    result = await db.execute(
        select(Account).where(Account.user_id == user.id, Account.is_default.is_(True))
    )
    account = result.scalar_one_or_none()
    if not account:
        raise NotFoundError("Create an account before seeding sample data")

    await db.execute(delete(Transaction).where(Transaction.account_id == account.id))

    transactions = generate_transactions(user.id, account.id, rng=rng)
    db.add_all(transactions)
    await db.flush()

    balance = await reconcile_account_balance(db, account.id)
    await db.commit()

    logger.info("sample_data_seeded", account_id=str(account.id), count=len(transactions))
    return len(transactions), balance
