from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from welth.core.database import get_db
from welth.models.user import User
from welth.schemas.transaction import TransactionResponse
from welth.services.dashboard import get_dashboard_data
from welth.api.deps import get_current_user

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("", response_model=List[TransactionResponse])
async def dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await get_dashboard_data(db, current_user)
