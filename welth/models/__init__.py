from welth.models.user import User
from welth.models.account import Account, AccountType
from welth.models.transaction import (
    Transaction,
    TransactionType,
    RecurringInterval,
    TransactionStatus,
)
from welth.models.budget import Budget

__all__ = [
    "User",
    "Account",
    "AccountType",
    "Transaction",
    "TransactionType",
    "RecurringInterval",
    "TransactionStatus",
    "Budget",
]
