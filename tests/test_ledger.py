"""Tests for the balance ledger operations."""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from welth.core.exceptions import NotFoundError
from welth.models.transaction import RecurringInterval, Transaction, TransactionType
from welth.schemas.transaction import TransactionDraft
from welth.services import ledger

from conftest import current_balance


def draft(account, type="EXPENSE", amount="100.00", **overrides) -> TransactionDraft:
    fields = dict(
        type=type,
        amount=amount,
        date=datetime(2024, 3, 10, 9, 0),
        account_id=account.id,
        category="Groceries",
        description="Weekly shop",
    )
    fields.update(overrides)
    return TransactionDraft(**fields)


async def signed_sum(db, account) -> Decimal:
    result = await db.execute(select(Transaction).where(Transaction.account_id == account.id))
    return sum(
        (ledger.signed_amount(tx.type, tx.amount) for tx in result.scalars().all()),
        Decimal("0"),
    )


class TestSignedAmount:

    def test_income_is_positive(self):
        assert ledger.signed_amount(TransactionType.INCOME, Decimal("20.00")) == Decimal("20.00")

    def test_expense_is_negative(self):
        assert ledger.signed_amount("EXPENSE", Decimal("30.00")) == Decimal("-30.00")


class TestCreateTransaction:

    async def test_expense_reduces_balance(self, db, user, make_account):
        account = await make_account(user, "500.00")

        tx = await ledger.create_transaction(db, user, draft(account))

        assert tx.amount == Decimal("100.00")
        assert await current_balance(db, account) == Decimal("400.00")

    async def test_income_increases_balance(self, db, user, make_account):
        account = await make_account(user, "500.00")

        await ledger.create_transaction(db, user, draft(account, type="INCOME", amount="250.50"))

        assert await current_balance(db, account) == Decimal("750.50")

    async def test_category_is_lower_cased(self, db, user, make_account):
        account = await make_account(user)

        tx = await ledger.create_transaction(db, user, draft(account, category="Food"))

        assert tx.category == "food"

    async def test_recurring_sets_next_date_from_transaction_date(self, db, user, make_account):
        account = await make_account(user)

        tx = await ledger.create_transaction(
            db, user,
            draft(account, date=datetime(2024, 1, 31), is_recurring=True, recurring_interval="MONTHLY"),
        )

        assert tx.is_recurring
        assert tx.recurring_interval == RecurringInterval.MONTHLY
        assert tx.next_recurring_date == datetime(2024, 2, 29)
        assert tx.last_processed is None

    async def test_non_recurring_has_no_next_date(self, db, user, make_account):
        account = await make_account(user)

        tx = await ledger.create_transaction(db, user, draft(account))

        assert tx.next_recurring_date is None
        assert tx.recurring_interval is None

    async def test_foreign_account_is_not_found(self, db, user, other_user, make_account):
        account = await make_account(other_user, "500.00")

        with pytest.raises(NotFoundError):
            await ledger.create_transaction(db, user, draft(account))

        await db.rollback()
        assert await current_balance(db, account) == Decimal("500.00")
        assert await signed_sum(db, account) == Decimal("0")

    async def test_missing_account_is_not_found(self, db, user, make_account):
        account = await make_account(user)
        account_id = uuid4()

        with pytest.raises(NotFoundError):
            await ledger.create_transaction(db, user, draft(account, account_id=account_id))


class TestUpdateTransaction:

    async def test_round_trip_create_update_delete(self, db, user, make_account):
        """500 -> expense 100 -> 400 -> expense 150 -> 350 -> delete -> 500."""
        account = await make_account(user, "500.00")

        tx = await ledger.create_transaction(db, user, draft(account, amount="100.00"))
        assert await current_balance(db, account) == Decimal("400.00")

        await ledger.update_transaction(db, user, tx.id, draft(account, amount="150.00"))
        assert await current_balance(db, account) == Decimal("350.00")

        deleted = await ledger.bulk_delete_transactions(db, user, [tx.id])
        assert deleted == 1
        assert await current_balance(db, account) == Decimal("500.00")

    async def test_switching_type_moves_balance_by_twice_the_amount(self, db, user, make_account):
        account = await make_account(user, "500.00")
        tx = await ledger.create_transaction(db, user, draft(account, amount="40.00"))

        await ledger.update_transaction(db, user, tx.id, draft(account, type="INCOME", amount="40.00"))

        assert await current_balance(db, account) == Decimal("540.00")

    async def test_moving_to_another_account(self, db, user, make_account):
        checking = await make_account(user, "500.00", name="Checking")
        savings = await make_account(user, "1000.00", name="Savings", is_default=False)
        tx = await ledger.create_transaction(db, user, draft(checking, amount="100.00"))

        await ledger.update_transaction(db, user, tx.id, draft(savings, amount="100.00"))

        assert await current_balance(db, checking) == Decimal("500.00")
        assert await current_balance(db, savings) == Decimal("900.00")

    async def test_moves_in_both_directions(self, db, user, make_account):
        checking = await make_account(user, "500.00", name="Checking")
        savings = await make_account(user, "1000.00", name="Savings", is_default=False)
        a = await ledger.create_transaction(db, user, draft(checking, amount="100.00"))
        b = await ledger.create_transaction(db, user, draft(savings, type="INCOME", amount="50.00"))

        await ledger.update_transaction(db, user, a.id, draft(savings, amount="100.00"))
        await ledger.update_transaction(db, user, b.id, draft(checking, type="INCOME", amount="50.00"))

        assert await current_balance(db, checking) == Decimal("550.00")
        assert await current_balance(db, savings) == Decimal("900.00")
        assert await current_balance(db, checking) == await signed_sum(db, checking)
        assert await current_balance(db, savings) == await signed_sum(db, savings)

    async def test_moving_to_foreign_account_is_not_found(
        self, db, user, other_user, make_account
    ):
        mine = await make_account(user, "500.00")
        theirs = await make_account(other_user, "500.00")
        tx = await ledger.create_transaction(db, user, draft(mine, amount="100.00"))

        with pytest.raises(NotFoundError):
            await ledger.update_transaction(db, user, tx.id, draft(theirs, amount="100.00"))

        await db.rollback()
        assert await current_balance(db, mine) == Decimal("400.00")
        assert await current_balance(db, theirs) == Decimal("500.00")
        unchanged = await ledger.get_transaction(db, user, tx.id)
        await db.refresh(unchanged)
        assert unchanged.account_id == mine.id

    async def test_moving_to_missing_account_is_not_found(self, db, user, make_account):
        account = await make_account(user, "500.00")
        tx = await ledger.create_transaction(db, user, draft(account, amount="100.00"))

        with pytest.raises(NotFoundError):
            await ledger.update_transaction(db, user, tx.id, draft(account, account_id=uuid4()))

        await db.rollback()
        assert await current_balance(db, account) == Decimal("400.00")

    async def test_clearing_recurrence_clears_next_date(self, db, user, make_account):
        account = await make_account(user)
        tx = await ledger.create_transaction(
            db, user, draft(account, is_recurring=True, recurring_interval="WEEKLY")
        )

        updated = await ledger.update_transaction(db, user, tx.id, draft(account, is_recurring=False))

        assert not updated.is_recurring
        assert updated.recurring_interval is None
        assert updated.next_recurring_date is None

    async def test_other_users_transaction_is_not_found(self, db, user, other_user, make_account):
        account = await make_account(other_user, "500.00")
        tx = await ledger.create_transaction(db, other_user, draft(account))

        with pytest.raises(NotFoundError):
            await ledger.update_transaction(db, user, tx.id, draft(account, amount="1.00"))

        await db.rollback()
        assert await current_balance(db, account) == Decimal("400.00")


class TestBulkDelete:

    async def test_aggregates_per_account(self, db, user, make_account):
        """Removing a 30 expense and a 20 income from 1000 leaves 1010."""
        account = await make_account(user, "1000.00")
        expense = Transaction(
            user_id=user.id, account_id=account.id, type=TransactionType.EXPENSE,
            amount=Decimal("30.00"), date=datetime(2024, 3, 1), category="food",
        )
        income = Transaction(
            user_id=user.id, account_id=account.id, type=TransactionType.INCOME,
            amount=Decimal("20.00"), date=datetime(2024, 3, 2), category="salary",
        )
        db.add_all([expense, income])
        await db.commit()

        deleted = await ledger.bulk_delete_transactions(db, user, [expense.id, income.id])

        assert deleted == 2
        assert await current_balance(db, account) == Decimal("1010.00")

    async def test_spans_several_accounts(self, db, user, make_account):
        checking = await make_account(user, "500.00", name="Checking")
        savings = await make_account(user, "500.00", name="Savings", is_default=False)
        a = await ledger.create_transaction(db, user, draft(checking, amount="50.00"))
        b = await ledger.create_transaction(db, user, draft(savings, type="INCOME", amount="75.00"))

        deleted = await ledger.bulk_delete_transactions(db, user, [a.id, b.id])

        assert deleted == 2
        assert await current_balance(db, checking) == Decimal("500.00")
        assert await current_balance(db, savings) == Decimal("500.00")

    async def test_already_deleted_id_is_a_no_op(self, db, user, make_account):
        account = await make_account(user, "500.00")
        tx = await ledger.create_transaction(db, user, draft(account))
        await ledger.bulk_delete_transactions(db, user, [tx.id])

        deleted = await ledger.bulk_delete_transactions(db, user, [tx.id])

        assert deleted == 0
        assert await current_balance(db, account) == Decimal("500.00")

    async def test_other_users_ids_are_dropped(self, db, user, other_user, make_account):
        mine = await make_account(user, "500.00")
        theirs = await make_account(other_user, "500.00")
        my_tx = await ledger.create_transaction(db, user, draft(mine, amount="10.00"))
        their_tx = await ledger.create_transaction(db, other_user, draft(theirs, amount="10.00"))

        deleted = await ledger.bulk_delete_transactions(db, user, [my_tx.id, their_tx.id])

        assert deleted == 1
        assert await current_balance(db, mine) == Decimal("500.00")
        assert await current_balance(db, theirs) == Decimal("490.00")
        assert await ledger.get_transaction(db, other_user, their_tx.id)

    async def test_empty_input_is_a_no_op(self, db, user):
        assert await ledger.bulk_delete_transactions(db, user, []) == 0

    async def test_single_delete_of_unknown_id_is_not_found(self, db, user):
        with pytest.raises(NotFoundError):
            await ledger.delete_transaction(db, user, uuid4())


class TestBalanceInvariant:

    async def test_balance_matches_signed_sum_after_mixed_operations(self, db, user, make_account):
        account = await make_account(user, "0.00")

        a = await ledger.create_transaction(db, user, draft(account, type="INCOME", amount="1200.00"))
        b = await ledger.create_transaction(db, user, draft(account, amount="89.99"))
        c = await ledger.create_transaction(db, user, draft(account, amount="15.01"))
        await ledger.update_transaction(db, user, b.id, draft(account, amount="99.99"))
        await ledger.update_transaction(db, user, a.id, draft(account, type="INCOME", amount="1100.00"))
        await ledger.bulk_delete_transactions(db, user, [c.id, uuid4()])
        await ledger.create_transaction(db, user, draft(account, type="INCOME", amount="0.01"))

        assert await current_balance(db, account) == await signed_sum(db, account)
        assert await current_balance(db, account) == Decimal("1000.02")

    async def test_reconcile_recomputes_from_transactions(self, db, user, make_account):
        account = await make_account(user, "123.45")
        await ledger.create_transaction(db, user, draft(account, type="INCOME", amount="10.00"))

        balance = await ledger.reconcile_account_balance(db, account.id)
        await db.commit()

        assert balance == Decimal("10.00")
        assert await current_balance(db, account) == Decimal("10.00")


class TestPostRecurringTransaction:

    NOW = datetime(2024, 4, 1, 6, 0)

    async def _template(self, db, user, account, **overrides):
        tx = await ledger.create_transaction(
            db, user,
            draft(
                account,
                amount="25.00",
                description="Streaming",
                date=datetime(2024, 3, 1),
                is_recurring=True,
                recurring_interval="MONTHLY",
                **overrides,
            ),
        )
        return tx

    async def test_posts_clone_and_advances_schedule(self, db, user, make_account):
        account = await make_account(user, "500.00")
        template = await self._template(db, user, account)
        assert await current_balance(db, account) == Decimal("475.00")

        posted = await ledger.post_recurring_transaction(db, template.id, self.NOW)

        assert posted is not None
        assert posted.id != template.id
        assert not posted.is_recurring
        assert posted.description == "Streaming (Recurring)"
        assert posted.amount == Decimal("25.00")
        assert posted.date == self.NOW
        assert await current_balance(db, account) == Decimal("450.00")

        await db.refresh(template)
        assert template.last_processed == self.NOW
        assert template.next_recurring_date == datetime(2024, 5, 1, 6, 0)

    async def test_second_post_before_next_date_is_a_no_op(self, db, user, make_account):
        account = await make_account(user, "500.00")
        template = await self._template(db, user, account)
        await ledger.post_recurring_transaction(db, template.id, self.NOW)

        again = await ledger.post_recurring_transaction(db, template.id, datetime(2024, 4, 2))

        assert again is None
        assert await current_balance(db, account) == Decimal("450.00")

    async def test_posts_again_once_next_date_arrives(self, db, user, make_account):
        account = await make_account(user, "500.00")
        template = await self._template(db, user, account)
        await ledger.post_recurring_transaction(db, template.id, self.NOW)

        again = await ledger.post_recurring_transaction(db, template.id, datetime(2024, 5, 1, 6, 0))

        assert again is not None
        assert await current_balance(db, account) == Decimal("425.00")

    async def test_stopped_template_is_never_posted(self, db, user, make_account):
        account = await make_account(user, "500.00")
        template = await self._template(db, user, account)
        await ledger.update_transaction(db, user, template.id, draft(account, amount="25.00"))

        posted = await ledger.post_recurring_transaction(db, template.id, self.NOW)

        assert posted is None
        assert await current_balance(db, account) == Decimal("475.00")

    async def test_missing_template_is_a_no_op(self, db):
        assert await ledger.post_recurring_transaction(db, uuid4(), self.NOW) is None

    async def test_due_query_selects_only_due_templates(self, db, user, make_account):
        account = await make_account(user, "500.00")
        due = await self._template(db, user, account)
        later = await self._template(db, user, account)
        await ledger.post_recurring_transaction(db, later.id, self.NOW)
        await ledger.create_transaction(db, user, draft(account))

        result = await db.execute(ledger.due_recurring_transactions_query(datetime(2024, 4, 15)))
        ids = {tx.id for tx in result.scalars().all()}

        assert ids == {due.id}
