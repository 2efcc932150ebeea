"""
Receipt reconciliation pipeline.

Orchestrates: parse fiscal data → validity window → match items →
decide status → store receipt → refresh balance.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping

from sqlalchemy.orm import Session

from cashback import store
from cashback.config import settings
from cashback.errors import CashbackError, DuplicateSubmission
from cashback.models import ReceiptModel
from cashback.pipeline.balance import (  # noqa: F401
    calculate_user_balance,
    reconcile_stale_balances,
    refresh_balance_safely,
    update_user_balance,
)
from cashback.pipeline.fiscal import FiscalClient, parse_receipt_data
from cashback.pipeline.matcher import match_items
from cashback.pipeline.propagator import (  # noqa: F401
    PropagationResult,
    decide_alias,
    repropagate_alias,
)
from cashback.pipeline.status import build_late_submission, determine_receipt_status
from cashback.pipeline.window import is_within_window, resolve_receipt_valid_days
from cashback.schemas import dump_items

logger = logging.getLogger(__name__)


def submit_receipt(
    db: Session,
    fiscal_client: FiscalClient,
    qr_data: str,
    claims: Mapping[str, str],
    user_id: str,
    now: datetime | None = None,
) -> ReceiptModel:
    """Verify and store one receipt submission.

    *claims* maps receipt item names to the product ids the user requests
    cashback for. Raises a :class:`CashbackError` subclass on rejection;
    nothing is persisted in that case. A late submission is stored with
    status ``auto_rejected_late_submission``.
    """
    now = now or datetime.now(timezone.utc)
    logger.info("Receipt submission from user %s: %s (%d claims)", user_id, qr_data, len(claims))

    if store.receipt_exists(db, qr_data=qr_data):
        logger.warning("Duplicate receipt submission attempted: %s", qr_data)
        raise DuplicateSubmission("Receipt has already been submitted")

    parsed = parse_receipt_data(qr_data, fiscal_client)

    if store.receipt_exists(db, fiscal_id=parsed.fiscal_id):
        logger.warning("Duplicate fiscal id submission: %s", parsed.fiscal_id)
        raise DuplicateSubmission("Receipt has already been submitted")

    valid_days = resolve_receipt_valid_days(
        store.configured_receipt_valid_days(db), settings.RECEIPT_VALID_DAYS
    )

    if not is_within_window(parsed.date, valid_days, now):
        logger.info(
            "Receipt %s is outside the %d-day limit, storing without cashback",
            parsed.fiscal_id, valid_days,
        )
        items, decision = build_late_submission(parsed)
    else:
        try:
            catalog = store.load_catalog(db, claims.values())
            match = match_items(
                parsed.items, claims, catalog, store.alias_factory(db), on=now.date()
            )
        except CashbackError:
            db.rollback()
            raise
        items = match.items
        decision = determine_receipt_status(items)

    receipt = store.create_receipt(
        db,
        ReceiptModel(
            id=store.new_id(),
            qr_data=qr_data,
            fiscal_id=parsed.fiscal_id,
            transaction_id=parsed.transaction_id,
            user_id=user_id,
            date=parsed.date,
            total_amount=parsed.total_amount,
            tax_amount=parsed.tax_amount,
            tax_rate=parsed.tax_rate,
            kkt_code=parsed.kkt_code,
            kkt_serial_number=parsed.kkt_serial_number,
            payment_method=parsed.payment_method,
            items=dump_items(items),
            verification_status=decision.status.value,
            final_cashback=decision.final_cashback,
        ),
    )
    logger.info(
        "Created receipt %s for user %s with status %s",
        receipt.id, user_id, receipt.verification_status,
    )

    refresh_balance_safely(db, user_id)
    return receipt


def get_user_receipts(db: Session, user_id: str) -> list[ReceiptModel]:
    receipts = (
        db.query(ReceiptModel)
        .filter(ReceiptModel.user_id == user_id)
        .order_by(ReceiptModel.created_at.desc())
        .all()
    )
    logger.info("Fetched %d receipts for user %s", len(receipts), user_id)
    return receipts
