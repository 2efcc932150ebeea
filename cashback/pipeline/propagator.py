"""
Alias decision propagator.

When an alias leaves ``unverified``, every receipt still in manual review
that references it is re-evaluated. Each receipt is an independent
read-modify-write guarded by the receipt version column.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cashback import store
from cashback.config import settings
from cashback.errors import (
    AliasNotFound,
    CashbackError,
    ConcurrentReceiptUpdate,
    IllegalAliasTransition,
)
from cashback.models import ProductAliasModel, ReceiptModel
from cashback.pipeline.balance import refresh_balance_safely
from cashback.pipeline.status import determine_receipt_status
from cashback.schemas import (
    AliasStatus,
    CashbackItem,
    ItemStatus,
    ReceiptItem,
    ReceiptStatus,
    dump_items,
    load_items,
)

logger = logging.getLogger(__name__)

_ITEM_OUTCOMES = {
    AliasStatus.VERIFIED: ItemStatus.MANUALLY_VERIFIED_ALIAS,
    AliasStatus.REJECTED: ItemStatus.MANUALLY_REJECTED_ALIAS,
}


@dataclass
class PropagationResult:
    alias: ProductAliasModel | None = None
    affected: list[ReceiptModel] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (receipt id, error)


def _references(item: ReceiptItem, alias_id: str) -> bool:
    return (
        isinstance(item, CashbackItem)
        and item.product_alias_id == alias_id
        and item.verification_status == ItemStatus.MANUAL_REVIEW
    )


def apply_alias_decision(
    items: list[ReceiptItem], alias_id: str, decision: AliasStatus
) -> tuple[list[ReceiptItem], bool]:
    """Rewrite pending items that reference *alias_id*. Returns (items, changed)."""
    outcome = _ITEM_OUTCOMES[decision]
    changed = False
    updated: list[ReceiptItem] = []
    for item in items:
        if _references(item, alias_id):
            item = item.model_copy(update={"verification_status": outcome})
            changed = True
        updated.append(item)
    return updated, changed


def reevaluate_receipt(
    db: Session,
    receipt_id: str,
    alias_id: str,
    decision: AliasStatus,
    max_retries: int,
) -> ReceiptModel | None:
    """Apply the decision to one receipt. Returns the receipt if it was written."""
    for attempt in range(1, max_retries + 1):
        receipt = db.get(ReceiptModel, receipt_id, populate_existing=True)
        if receipt is None or receipt.verification_status != ReceiptStatus.MANUAL_REVIEW.value:
            return None

        items, changed = apply_alias_decision(load_items(receipt.items), alias_id, decision)
        outcome = determine_receipt_status(items, manual=True)
        if not changed and outcome.status.value == receipt.verification_status:
            return None

        receipt.items = dump_items(items)
        receipt.verification_status = outcome.status.value
        receipt.final_cashback = outcome.final_cashback
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning(
                "Receipt %s changed concurrently (attempt %d/%d), retrying",
                receipt_id, attempt, max_retries,
            )
            continue

        logger.info(
            "Updated receipt %s to %s with final cashback %s after alias %s was %s",
            receipt_id, outcome.status.value, outcome.final_cashback, alias_id, decision.value,
        )
        return receipt

    raise ConcurrentReceiptUpdate(
        f"Receipt {receipt_id} kept changing during re-evaluation, gave up after {max_retries} attempts"
    )


def propagate_alias_decision(
    db: Session,
    alias_id: str,
    decision: AliasStatus,
    max_retries: int | None = None,
) -> PropagationResult:
    """Re-evaluate every manual-review receipt that references *alias_id*.

    A failure on one receipt is logged and reported; the scan carries on.
    """
    if max_retries is None:
        max_retries = settings.PROPAGATION_MAX_RETRIES
    result = PropagationResult()

    # snapshot first: every commit below expires the loaded rows
    snapshot = [(receipt.id, receipt.items) for receipt in store.manual_review_receipts(db)]
    logger.info("Scanning %d manual_review receipts for alias %s", len(snapshot), alias_id)

    for receipt_id, raw_items in snapshot:
        try:
            if not any(_references(item, alias_id) for item in load_items(raw_items)):
                continue
            receipt = reevaluate_receipt(db, receipt_id, alias_id, decision, max_retries)
        except (CashbackError, SQLAlchemyError, ValidationError) as exc:
            db.rollback()
            logger.error("Error updating receipt %s: %s", receipt_id, exc, exc_info=True)
            result.failed.append((receipt_id, str(exc)))
            continue
        if receipt is not None:
            result.affected.append(receipt)

    logger.info(
        "Processed alias %s: %d receipts updated, %d failed",
        alias_id, len(result.affected), len(result.failed),
    )
    return result


def decide_alias(
    db: Session,
    alias_id: str,
    decision: str | AliasStatus,
    max_retries: int | None = None,
) -> PropagationResult:
    """Record a one-shot alias decision and propagate it to pending receipts."""
    try:
        target = AliasStatus(decision)
    except ValueError:
        target = None
    if target not in _ITEM_OUTCOMES:
        raise IllegalAliasTransition(
            f"Decision must be 'verified' or 'rejected', got {decision!r}"
        )

    alias = store.transition_alias(db, alias_id, target)
    logger.info("Alias %s '%s' is now %s", alias.id, alias.alternative_name, target.value)
    return _propagate_and_refresh(db, alias, target, max_retries)


def repropagate_alias(
    db: Session,
    alias_id: str,
    max_retries: int | None = None,
) -> PropagationResult:
    """Re-run propagation of an already decided alias.

    Picks up receipts that failed during the original propagation and
    are still waiting in manual review.
    """
    alias = db.get(ProductAliasModel, alias_id)
    if alias is None:
        raise AliasNotFound(f"Product alias {alias_id} not found")
    try:
        decision = AliasStatus(alias.verification_status)
    except ValueError:
        decision = None
    if decision not in _ITEM_OUTCOMES:
        raise IllegalAliasTransition(
            f"Alias is {alias.verification_status}; only decided aliases can be re-propagated"
        )

    logger.info("Re-propagating %s decision of alias %s", decision.value, alias_id)
    return _propagate_and_refresh(db, alias, decision, max_retries)


def _propagate_and_refresh(
    db: Session,
    alias: ProductAliasModel,
    decision: AliasStatus,
    max_retries: int | None,
) -> PropagationResult:
    alias_id = alias.id
    result = propagate_alias_decision(db, alias_id, decision, max_retries)
    result.alias = db.get(ProductAliasModel, alias_id)

    for user_id in sorted({receipt.user_id for receipt in result.affected}):
        refresh_balance_safely(db, user_id)
    return result
