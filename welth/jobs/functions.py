"""
Durable background functions.

Schedules, retries and per-user throttling belong to the job platform; each
function body is a thin wrapper that opens a database session and calls into
``welth.services``. Fan-out for recurring transactions goes through events
so the platform can parallelize and throttle them.
"""

import datetime
from typing import List, Optional
from uuid import UUID

import inngest
import structlog
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from welth.core.database import AsyncSessionLocal
from welth.services.budgets import check_budget_alerts
from welth.services.email_service import EmailService
from welth.services.ledger import due_recurring_transactions_query, post_recurring_transaction
from welth.services.reports import generate_monthly_reports as send_monthly_reports
from welth.jobs.client import RECURRING_TRANSACTION_EVENT, inngest_client

logger = structlog.get_logger(__name__)


class RecurringTransactionEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: UUID = Field(alias="transactionId")
    user_id: UUID = Field(alias="userId")


async def collect_due_recurring_events(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    now: Optional[datetime.datetime] = None,
) -> List[dict]:
    """One event payload per recurring template that is due."""
    async with session_factory() as db:
        result = await db.execute(due_recurring_transactions_query(now))
        return [
            {"transactionId": str(tx.id), "userId": str(tx.user_id)}
            for tx in result.scalars().all()
        ]


async def process_recurring_event(
    data: dict,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> Optional[str]:
    """Post one recurring occurrence. Returns the new transaction id, if any."""
    event = RecurringTransactionEvent.model_validate(data)
    async with session_factory() as db:
        posted = await post_recurring_transaction(db, event.transaction_id)
    return str(posted.id) if posted else None


@inngest_client.create_function(
    fn_id="check-budget-alerts",
    name="Check Budget Alerts",
    trigger=inngest.TriggerCron(cron="0 */6 * * *"),
    retries=2,
)
async def check_budget_alert(ctx: inngest.Context) -> int:
    async def _run() -> int:
        async with AsyncSessionLocal() as db:
            return await check_budget_alerts(db, EmailService())

    return await ctx.step.run("check-budgets", _run)


@inngest_client.create_function(
    fn_id="trigger-recurring-transactions",
    name="Trigger Recurring Transactions",
    trigger=inngest.TriggerCron(cron="0 0 * * *"),
    retries=2,
)
async def trigger_recurring_transactions(ctx: inngest.Context) -> dict:
    payloads = await ctx.step.run("fetch-recurring-transactions", collect_due_recurring_events)

    if payloads:
        await ctx.step.send_event(
            "send-recurring-transaction-events",
            [inngest.Event(name=RECURRING_TRANSACTION_EVENT, data=payload) for payload in payloads],
        )

    logger.info("recurring_transactions_triggered", count=len(payloads))
    return {"triggered": len(payloads)}


@inngest_client.create_function(
    fn_id="process-recurring-transaction",
    name="Process Recurring Transaction",
    trigger=inngest.TriggerEvent(event=RECURRING_TRANSACTION_EVENT),
    retries=2,
    throttle=inngest.Throttle(
        key="event.data.userId",
        limit=10,
        period=datetime.timedelta(minutes=1),
    ),
)
async def process_recurring_transaction(ctx: inngest.Context) -> Optional[str]:
    data = dict(ctx.event.data)
    if not data.get("transactionId") or not data.get("userId"):
        logger.error("recurring_event_invalid", data=data)
        return None

    async def _run() -> Optional[str]:
        return await process_recurring_event(data)

    return await ctx.step.run("create-transaction", _run)


@inngest_client.create_function(
    fn_id="generate-monthly-reports",
    name="Generate Monthly Reports",
    trigger=inngest.TriggerCron(cron="0 0 1 * *"),
    retries=2,
)
async def generate_monthly_reports(ctx: inngest.Context) -> int:
    async def _run() -> int:
        async with AsyncSessionLocal() as db:
            return await send_monthly_reports(db, EmailService())

    return await ctx.step.run("generate-reports", _run)


functions = [
    check_budget_alert,
    trigger_recurring_transactions,
    process_recurring_transaction,
    generate_monthly_reports,
]
