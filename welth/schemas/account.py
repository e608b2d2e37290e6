from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from enum import Enum

from welth.schemas.transaction import TransactionResponse


class AccountType(str, Enum):
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: AccountType
    balance: str = Field(..., min_length=1, description="Initial balance as entered")
    is_default: bool = False


class AccountResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    type: AccountType
    balance: Decimal
    is_default: bool
    created_at: datetime
    updated_at: datetime
    transaction_count: int = 0

    class Config:
        from_attributes = True


class AccountWithTransactions(AccountResponse):
    transactions: List[TransactionResponse] = []


class DefaultAccountResult(BaseModel):
    success: bool
    data: Optional[AccountResponse] = None
    error: Optional[str] = None
