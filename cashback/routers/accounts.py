"""
Cashback withdrawal requests and balances.

POST  /api/cashback-requests                 — request a payout
PATCH /api/cashback-requests/{id}            — approve / reject a request
GET   /api/users/me/balance                  — caller's stored balance
POST  /api/users/{id}/balance/recompute      — recompute one balance
POST  /api/balances/reconcile                — recompute all stale balances
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cashback import store
from cashback.database import get_db
from cashback.models import CashbackRequestModel, UserModel
from cashback.pipeline import reconcile_stale_balances, refresh_balance_safely, update_user_balance
from cashback.routers.deps import get_current_user, require_roles
from cashback.schemas import (
    BalanceResponse,
    CashbackRequestCreate,
    CashbackRequestRead,
    CashbackRequestStatus,
    CashbackRequestUpdate,
    ReconcileResponse,
    UserRole,
)

logger = logging.getLogger(__name__)
router = APIRouter()

admin_only = require_roles(UserRole.ADMINISTRATOR)


# ── POST /api/cashback-requests ──────────────────────────────────────────
@router.post("/cashback-requests", response_model=CashbackRequestRead, status_code=201)
def create_cashback_request(
    req: CashbackRequestCreate,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    request = CashbackRequestModel(
        id=store.new_id(),
        requester_id=user.id,
        amount=req.amount,
        verification_status=CashbackRequestStatus.PENDING.value,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info("Created cashback request %s for user %s: %s", request.id, user.id, req.amount)
    return CashbackRequestRead.model_validate(request)


# ── PATCH /api/cashback-requests/{request_id} ────────────────────────────
@router.patch("/cashback-requests/{request_id}", response_model=CashbackRequestRead)
def update_cashback_request(
    request_id: str,
    req: CashbackRequestUpdate,
    user: UserModel = Depends(admin_only),
    db: Session = Depends(get_db),
):
    request = db.get(CashbackRequestModel, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Cashback request not found")

    request.verification_status = req.verification_status.value
    db.commit()
    logger.info("Cashback request %s set to %s by %s", request_id, req.verification_status.value, user.id)

    refresh_balance_safely(db, request.requester_id)
    db.refresh(request)
    return CashbackRequestRead.model_validate(request)


# ── GET /api/users/me/balance ────────────────────────────────────────────
@router.get("/users/me/balance", response_model=BalanceResponse)
def my_balance(user: UserModel = Depends(get_current_user)):
    return BalanceResponse(user_id=user.id, balance=user.account)


# ── POST /api/users/{user_id}/balance/recompute ──────────────────────────
@router.post("/users/{user_id}/balance/recompute", response_model=BalanceResponse)
def recompute_balance(
    user_id: str,
    _: UserModel = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return BalanceResponse(user_id=user_id, balance=update_user_balance(db, user_id))


# ── POST /api/balances/reconcile ─────────────────────────────────────────
@router.post("/balances/reconcile", response_model=ReconcileResponse)
def reconcile_balances(
    _: UserModel = Depends(admin_only),
    db: Session = Depends(get_db),
):
    return ReconcileResponse(reconciled=reconcile_stale_balances(db))
