"""
Balance calculator.

A user's balance is recomputed from scratch: verified receipt cashback
minus approved cashback requests.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cashback.errors import NotFound
from cashback.models import CashbackRequestModel, ReceiptModel, UserModel
from cashback.schemas import BALANCE_RECEIPT_STATUSES, CashbackRequestStatus

logger = logging.getLogger(__name__)


def calculate_user_balance(db: Session, user_id: str) -> Decimal:
    logger.info("[Balance] Starting balance calculation for user %s", user_id)
    receipts = (
        db.query(ReceiptModel.id, ReceiptModel.final_cashback)
        .filter(
            ReceiptModel.user_id == user_id,
            ReceiptModel.verification_status.in_([s.value for s in BALANCE_RECEIPT_STATUSES]),
        )
        .all()
    )
    earned = sum((Decimal(r.final_cashback or 0) for r in receipts), Decimal("0"))

    requests = (
        db.query(CashbackRequestModel.id, CashbackRequestModel.amount)
        .filter(
            CashbackRequestModel.requester_id == user_id,
            CashbackRequestModel.verification_status == CashbackRequestStatus.APPROVED.value,
        )
        .all()
    )
    withdrawn = sum((Decimal(r.amount or 0) for r in requests), Decimal("0"))

    balance = earned - withdrawn
    logger.info(
        "[Balance] User %s: %d receipts earned %s, %d approved requests took %s, balance %s",
        user_id, len(receipts), earned, len(requests), withdrawn, balance,
    )
    return balance


def update_user_balance(db: Session, user_id: str) -> Decimal:
    """Recompute and store the balance of *user_id*."""
    user = db.get(UserModel, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    balance = calculate_user_balance(db, user_id)
    user.account = balance
    user.balance_stale = False
    db.commit()
    return balance


def _mark_stale(db: Session, user_id: str) -> None:
    try:
        db.query(UserModel).filter(UserModel.id == user_id).update(
            {UserModel.balance_stale: True}, synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("[Balance] Could not flag user %s for reconciliation", user_id, exc_info=True)


def refresh_balance_safely(db: Session, user_id: str) -> Optional[Decimal]:
    """Recompute a balance after a mutation that is already committed.

    Failures do not propagate; the user is flagged for
    :func:`reconcile_stale_balances` instead.
    """
    try:
        return update_user_balance(db, user_id)
    except (SQLAlchemyError, NotFound):
        db.rollback()
        logger.error("[Balance] Recompute failed for user %s", user_id, exc_info=True)
        _mark_stale(db, user_id)
        return None


def reconcile_stale_balances(db: Session) -> int:
    """Recompute every balance flagged stale. Returns how many were fixed."""
    stale_ids = [
        row.id for row in db.query(UserModel.id).filter(UserModel.balance_stale.is_(True)).all()
    ]
    fixed = 0
    for user_id in stale_ids:
        if refresh_balance_safely(db, user_id) is not None:
            fixed += 1
    logger.info("[Balance] Reconciled %d of %d stale balances", fixed, len(stale_ids))
    return fixed
