from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from welth.models.transaction import Transaction
from welth.models.user import User


async def get_dashboard_data(db: AsyncSession, user: User) -> List[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.user_id == user.id)
        .order_by(Transaction.date.desc())
    )
    return list(result.scalars().all())
