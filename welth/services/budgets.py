from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from welth.core.config import settings
from welth.models.account import Account
from welth.models.budget import Budget
from welth.models.transaction import Transaction, TransactionType
from welth.models.user import User
from welth.services.email_service import EmailService

logger = structlog.get_logger(__name__)


def month_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """[start, end) of the calendar month containing ``moment``."""
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start, start + relativedelta(months=1)


def is_new_month(last_alert_sent: datetime, now: datetime) -> bool:
    return last_alert_sent.month != now.month or last_alert_sent.year != now.year


def usage_percentage(total_expenses: Decimal, budget_amount: Decimal) -> float:
    if budget_amount <= 0:
        return 0.0
    return float(Decimal(total_expenses) / Decimal(budget_amount) * 100)


def should_send_alert(
    budget: Budget,
    total_expenses: Decimal,
    now: Optional[datetime] = None,
    threshold: Optional[float] = None,
) -> bool:
    """At or over the threshold, and no alert yet this calendar month."""
    now = now or datetime.utcnow()
    threshold = settings.BUDGET_ALERT_THRESHOLD if threshold is None else threshold

    if budget.amount is None or budget.amount <= 0:
        return False
    if usage_percentage(total_expenses, budget.amount) < threshold:
        return False
    return budget.last_alert_sent is None or is_new_month(budget.last_alert_sent, now)


async def get_month_expenses(
    db: AsyncSession,
    user_id: UUID,
    account_id: UUID,
    now: Optional[datetime] = None,
) -> Decimal:
    start, end = month_bounds(now or datetime.utcnow())
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.user_id == user_id,
            Transaction.account_id == account_id,
            Transaction.type == TransactionType.EXPENSE,
            Transaction.date >= start,
            Transaction.date < end,
        )
    )
    return Decimal(str(result.scalar())).quantize(Decimal("0.01"))


async def get_current_budget(
    db: AsyncSession,
    user: User,
    account_id: UUID,
) -> Tuple[Optional[Budget], Decimal]:
    """The user's budget and this month's expenses on ``account_id``."""
    result = await db.execute(select(Budget).where(Budget.user_id == user.id))
    budget = result.scalar_one_or_none()
    expenses = await get_month_expenses(db, user.id, account_id)
    return budget, expenses


async def update_budget(db: AsyncSession, user: User, amount: Decimal) -> Budget:
    """Create or replace the user's single budget."""
    result = await db.execute(select(Budget).where(Budget.user_id == user.id))
    budget = result.scalar_one_or_none()

    if budget:
        budget.amount = amount
    else:
        budget = Budget(user_id=user.id, amount=amount)
        db.add(budget)

    await db.commit()
    await db.refresh(budget)

    logger.info("budget_updated", budget_id=str(budget.id), amount=str(amount))
    return budget


async def check_budget_alerts(
    db: AsyncSession,
    emailer: EmailService,
    now: Optional[datetime] = None,
) -> int:
    """Send at most one alert per budget per month. Returns alerts sent.

    ``last_alert_sent`` is written only after the e-mail went out, so a
    failed send is retried on the next run rather than lost for the month.
    """
    now = now or datetime.utcnow()

    result = await db.execute(
        select(Budget, User, Account)
        .join(User, User.id == Budget.user_id)
        .join(Account, (Account.user_id == User.id) & Account.is_default.is_(True))
    )
    rows = result.all()

    sent = 0
    for budget, user, default_account in rows:
        total_expenses = await get_month_expenses(db, user.id, default_account.id, now)

        if not should_send_alert(budget, total_expenses, now):
            continue

        percentage = usage_percentage(total_expenses, budget.amount)
        email = await emailer.send_email(
            to=user.email,
            subject=f"Budget Alert for {default_account.name}",
            template="budget_alert.html",
            data={
                "user_name": user.name or "",
                "account_name": default_account.name,
                "usage_percentage": percentage,
                "budget_amount": budget.amount,
                "total_expenses": total_expenses,
                "remaining": budget.amount - total_expenses,
            },
        )

        if not email.success:
            logger.warning(
                "budget_alert_send_failed",
                budget_id=str(budget.id),
                error=email.error,
            )
            continue

        budget.last_alert_sent = now
        await db.commit()
        sent += 1

        logger.info(
            "budget_alert_sent",
            budget_id=str(budget.id),
            usage_percentage=round(percentage, 2),
        )

    return sent
