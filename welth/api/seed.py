from fastapi import APIRouter, Depends
from pydantic import BaseModel
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from welth.core.database import get_db
from welth.models.user import User
from welth.services.seed import seed_transactions
from welth.api.deps import get_current_user

router = APIRouter(prefix="/seed", tags=["Seed"])


class SeedResult(BaseModel):
    success: bool
    message: str
    balance: Decimal


@router.get("", response_model=SeedResult)
async def seed(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    count, balance = await seed_transactions(db, current_user)
    return SeedResult(success=True, message=f"Created {count} transactions", balance=balance)
