from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from welth.core.database import get_db
from welth.core.exceptions import WelthError
from welth.models.account import Account
from welth.models.user import User
from welth.schemas.account import (
    AccountCreate, AccountResponse, AccountWithTransactions, DefaultAccountResult
)
from welth.schemas.transaction import TransactionResponse
from welth.services import accounts as account_service
from welth.api.deps import get_current_user

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def _account_response(account: Account, transaction_count: int = 0) -> AccountResponse:
    response = AccountResponse.model_validate(account)
    response.transaction_count = transaction_count
    return response


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    data: AccountCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    account = await account_service.create_account(db, current_user, data)
    return _account_response(account)


@router.get("", response_model=List[AccountResponse])
async def list_accounts(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    rows = await account_service.get_user_accounts(db, current_user)
    return [_account_response(account, count) for account, count in rows]


@router.get("/{account_id}", response_model=AccountWithTransactions)
async def get_account(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    account, transactions = await account_service.get_account_with_transactions(
        db, current_user, account_id
    )
    return AccountWithTransactions(
        **_account_response(account, len(transactions)).model_dump(),
        transactions=[TransactionResponse.model_validate(tx) for tx in transactions],
    )


@router.put("/{account_id}/default", response_model=DefaultAccountResult)
async def set_default_account(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Make this the user's default account; failures come back as a result, not an error."""
    try:
        account = await account_service.update_default_account(db, current_user, account_id)
    except WelthError as e:
        await db.rollback()
        return DefaultAccountResult(success=False, error=e.message)
    return DefaultAccountResult(success=True, data=_account_response(account))
