from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class RecurringInterval(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TransactionDraft(BaseModel):
    """Full description of a transaction, used for both create and replace."""

    type: TransactionType
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    date: datetime
    account_id: UUID
    category: str = Field(..., min_length=1, max_length=100)
    receipt_url: Optional[str] = None
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None

    @field_validator("date")
    @classmethod
    def strip_timezone(cls, v: datetime) -> datetime:
        # Stored as naive UTC
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @model_validator(mode="after")
    def interval_required_when_recurring(self):
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring interval is required for recurring transactions")
        return self


class TransactionResponse(BaseModel):
    id: UUID
    user_id: UUID
    account_id: UUID
    type: TransactionType
    amount: Decimal
    description: Optional[str] = None
    date: datetime
    category: str
    receipt_url: Optional[str] = None
    is_recurring: bool
    recurring_interval: Optional[RecurringInterval] = None
    next_recurring_date: Optional[datetime] = None
    last_processed: Optional[datetime] = None
    status: TransactionStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransactionResult(BaseModel):
    success: bool
    data: TransactionResponse


class BulkDeleteRequest(BaseModel):
    transaction_ids: List[UUID] = []


class BulkDeleteResult(BaseModel):
    success: bool
    deleted_count: int
    message: Optional[str] = None


class ReceiptScanResponse(BaseModel):
    amount: Decimal
    date: datetime
    description: Optional[str] = None
    category: Optional[str] = None
    merchant_name: Optional[str] = None
