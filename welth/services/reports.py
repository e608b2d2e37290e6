from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from welth.models.transaction import Transaction, TransactionType
from welth.models.user import User
from welth.services.budgets import month_bounds
from welth.services.email_service import EmailService
from welth.services.gemini_service import generate_financial_insights

logger = structlog.get_logger(__name__)

InsightsFn = Callable[[Dict, str], Awaitable[List[str]]]


@dataclass
class MonthlyStats:
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    by_category: Dict[str, Decimal] = field(default_factory=dict)
    transaction_count: int = 0


async def get_monthly_stats(db: AsyncSession, user_id: UUID, month: datetime) -> MonthlyStats:
    """Income, expenses and expense breakdown for the calendar month of ``month``."""
    start, end = month_bounds(month)
    result = await db.execute(
        select(Transaction).where(
            Transaction.user_id == user_id,
            Transaction.date >= start,
            Transaction.date < end,
        )
    )

    stats = MonthlyStats()
    for tx in result.scalars().all():
        stats.transaction_count += 1
        if tx.type == TransactionType.EXPENSE:
            stats.total_expenses += tx.amount
            stats.by_category[tx.category] = stats.by_category.get(tx.category, Decimal("0")) + tx.amount
        else:
            stats.total_income += tx.amount
    return stats


async def generate_monthly_reports(
    db: AsyncSession,
    emailer: EmailService,
    insights: InsightsFn = generate_financial_insights,
    now: Optional[datetime] = None,
) -> int:
    """E-mail every user a report for the previous month. Returns reports sent."""
    now = now or datetime.utcnow()
    report_month = now - relativedelta(months=1)
    month_name = report_month.strftime("%B %Y")

    result = await db.execute(select(User))
    users = result.scalars().all()

    sent = 0
    for user in users:
        stats = await get_monthly_stats(db, user.id, report_month)
        stats_dict = asdict(stats)
        user_insights = await insights(stats_dict, month_name)

        email = await emailer.send_email(
            to=user.email,
            subject=f"Your Monthly Financial Report - {month_name}",
            template="monthly_report.html",
            data={
                "user_name": user.name or "",
                "month": month_name,
                "stats": stats_dict,
                "insights": user_insights,
            },
        )
        if email.success:
            sent += 1
        else:
            logger.warning("monthly_report_send_failed", user_id=str(user.id), error=email.error)

    logger.info("monthly_reports_generated", users=len(users), sent=sent)
    return sent
