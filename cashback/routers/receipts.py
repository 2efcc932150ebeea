"""
Receipt API endpoints.

POST /api/receipts/submit  — verify a QR receipt and claim cashback
GET  /api/receipts/me      — list the caller's receipts
GET  /api/receipts/{id}    — get one of the caller's receipts
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cashback.database import get_db
from cashback.models import ReceiptModel, UserModel
from cashback.pipeline import get_user_receipts, submit_receipt
from cashback.pipeline.fiscal import FiscalClient
from cashback.routers.deps import get_current_user, get_fiscal_client
from cashback.schemas import (
    ReceiptListMeta,
    ReceiptListResponse,
    ReceiptRead,
    ReceiptStatus,
    SubmitReceiptRequest,
    SubmitReceiptResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ── POST /api/receipts/submit ────────────────────────────────────────────
@router.post("/receipts/submit", response_model=SubmitReceiptResponse, status_code=201)
def submit(
    req: SubmitReceiptRequest,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    fiscal_client: FiscalClient = Depends(get_fiscal_client),
):
    receipt = submit_receipt(db, fiscal_client, req.qr_data.strip(), req.item_mappings, user.id)

    if receipt.verification_status == ReceiptStatus.AUTO_REJECTED_LATE_SUBMISSION.value:
        message = "Receipt accepted but rejected: the submission deadline has passed."
    else:
        message = "Receipt submitted and will be processed."
    return SubmitReceiptResponse(message=message, receipt=ReceiptRead.model_validate(receipt))


# ── GET /api/receipts/me ─────────────────────────────────────────────────
@router.get("/receipts/me", response_model=ReceiptListResponse)
def my_receipts(
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    receipts = [ReceiptRead.model_validate(r) for r in get_user_receipts(db, user.id)]
    return ReceiptListResponse(data=receipts, meta=ReceiptListMeta(total=len(receipts)))


# ── GET /api/receipts/{receipt_id} ───────────────────────────────────────
@router.get("/receipts/{receipt_id}", response_model=ReceiptRead)
def get_receipt(
    receipt_id: str,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = db.get(ReceiptModel, receipt_id)
    if not row or row.user_id != user.id:
        logger.warning("Receipt not found: %s", receipt_id)
        raise HTTPException(status_code=404, detail="Receipt not found")
    return ReceiptRead.model_validate(row)
