from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class BudgetUpdate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class BudgetResponse(BaseModel):
    id: UUID
    user_id: UUID
    amount: Decimal
    last_alert_sent: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CurrentBudgetResponse(BaseModel):
    budget: Optional[BudgetResponse] = None
    current_expenses: Decimal


class BudgetUpdateResult(BaseModel):
    success: bool
    data: BudgetResponse
