from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from welth.core.database import get_db
from welth.core.exceptions import ValidationError
from welth.models.user import User
from welth.schemas.transaction import (
    BulkDeleteRequest, BulkDeleteResult, ReceiptScanResponse,
    TransactionDraft, TransactionResponse, TransactionResult
)
from welth.services import ledger
from welth.services.gemini_service import scan_receipt
from welth.services.rate_limiter import TokenBucketRateLimiter
from welth.api.deps import get_current_user, get_rate_limiter

router = APIRouter(prefix="/transactions", tags=["Transactions"])

MAX_RECEIPT_BYTES = 5 * 1024 * 1024


@router.post("", response_model=TransactionResult, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    draft: TransactionDraft,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    limiter: TokenBucketRateLimiter = Depends(get_rate_limiter)
):
    # Denied requests must not touch the database
    await limiter.enforce(str(current_user.id))
    tx = await ledger.create_transaction(db, current_user, draft)
    return TransactionResult(success=True, data=TransactionResponse.model_validate(tx))


@router.post("/bulk-delete", response_model=BulkDeleteResult)
async def bulk_delete_transactions(
    request: BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    deleted = await ledger.bulk_delete_transactions(db, current_user, request.transaction_ids)
    if deleted == 0:
        return BulkDeleteResult(success=True, deleted_count=0, message="No transactions found to delete")
    return BulkDeleteResult(
        success=True,
        deleted_count=deleted,
        message=f"Successfully deleted {deleted} transactions",
    )


@router.post("/scan-receipt", response_model=ReceiptScanResponse)
async def scan_receipt_image(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user)
):
    if not (file.content_type or "").startswith("image/"):
        raise ValidationError("Please upload an image file")
    image = await file.read()
    if not image:
        raise ValidationError("Uploaded file is empty")
    if len(image) > MAX_RECEIPT_BYTES:
        raise ValidationError("File size should be less than 5MB")

    scan = await scan_receipt(image, file.content_type)
    return ReceiptScanResponse(
        amount=scan.amount,
        date=scan.date,
        description=scan.description,
        category=scan.category,
        merchant_name=scan.merchant_name,
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await ledger.get_transaction(db, current_user, transaction_id)


@router.put("/{transaction_id}", response_model=TransactionResult)
async def update_transaction(
    transaction_id: UUID,
    draft: TransactionDraft,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    tx = await ledger.update_transaction(db, current_user, transaction_id, draft)
    return TransactionResult(success=True, data=TransactionResponse.model_validate(tx))


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ledger.delete_transaction(db, current_user, transaction_id)
