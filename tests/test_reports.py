from datetime import datetime
from decimal import Decimal

from welth.models.transaction import Transaction, TransactionType
from welth.services.reports import generate_monthly_reports, get_monthly_stats

from conftest import FakeEmailService


async def add(db, user, account, type, amount, category, date):
    db.add(Transaction(
        user_id=user.id, account_id=account.id, type=type,
        amount=Decimal(amount), date=date, category=category,
    ))
    await db.commit()


class TestGetMonthlyStats:

    async def test_totals_and_breakdown(self, db, user, make_account):
        account = await make_account(user)
        await add(db, user, account, TransactionType.INCOME, "3000.00", "salary", datetime(2024, 4, 1))
        await add(db, user, account, TransactionType.EXPENSE, "1200.00", "housing", datetime(2024, 4, 2))
        await add(db, user, account, TransactionType.EXPENSE, "40.00", "food", datetime(2024, 4, 10))
        await add(db, user, account, TransactionType.EXPENSE, "60.00", "food", datetime(2024, 4, 30, 23, 59))
        await add(db, user, account, TransactionType.EXPENSE, "500.00", "travel", datetime(2024, 5, 1))

        stats = await get_monthly_stats(db, user.id, datetime(2024, 4, 15))

        assert stats.total_income == Decimal("3000.00")
        assert stats.total_expenses == Decimal("1300.00")
        assert stats.by_category == {"housing": Decimal("1200.00"), "food": Decimal("100.00")}
        assert stats.transaction_count == 4


class TestGenerateMonthlyReports:

    async def test_reports_previous_month_to_every_user(self, db, user, other_user, make_account, emailer):
        account = await make_account(user)
        await add(db, user, account, TransactionType.EXPENSE, "80.00", "food", datetime(2024, 4, 12))
        seen = []

        async def insights(stats, month):
            seen.append((stats["total_expenses"], month))
            return ["Cook at home more often."]

        sent = await generate_monthly_reports(db, emailer, insights=insights, now=datetime(2024, 5, 1))

        assert sent == 2
        assert (Decimal("80.00"), "April 2024") in seen
        subjects = {message["subject"] for message in emailer.sent}
        assert subjects == {"Your Monthly Financial Report - April 2024"}
        jordan = next(m for m in emailer.sent if m["to"] == "jordan@example.com")
        assert jordan["template"] == "monthly_report.html"
        assert jordan["data"]["insights"] == ["Cook at home more often."]
        assert jordan["data"]["stats"]["by_category"] == {"food": Decimal("80.00")}

    async def test_january_reports_on_december(self, db, user, emailer):
        async def insights(stats, month):
            return []

        await generate_monthly_reports(db, emailer, insights=insights, now=datetime(2025, 1, 1))

        assert emailer.sent[0]["data"]["month"] == "December 2024"

    async def test_failed_sends_are_not_counted(self, db, user):
        async def insights(stats, month):
            return []

        sent = await generate_monthly_reports(
            db, FakeEmailService(fail=True), insights=insights, now=datetime(2024, 5, 1)
        )

        assert sent == 0
