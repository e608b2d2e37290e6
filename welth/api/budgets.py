from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from welth.core.database import get_db
from welth.models.user import User
from welth.schemas.budget import (
    BudgetResponse, BudgetUpdate, BudgetUpdateResult, CurrentBudgetResponse
)
from welth.services import budgets as budget_service
from welth.api.deps import get_current_user

router = APIRouter(prefix="/budgets", tags=["Budgets"])


@router.get("/current", response_model=CurrentBudgetResponse)
async def get_current_budget(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The user's monthly budget and this month's expenses on the given account."""
    budget, expenses = await budget_service.get_current_budget(db, current_user, account_id)
    return CurrentBudgetResponse(
        budget=BudgetResponse.model_validate(budget) if budget else None,
        current_expenses=expenses,
    )


@router.put("", response_model=BudgetUpdateResult)
async def update_budget(
    data: BudgetUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    budget = await budget_service.update_budget(db, current_user, data.amount)
    return BudgetUpdateResult(success=True, data=BudgetResponse.model_validate(budget))
