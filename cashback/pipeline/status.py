"""
Receipt state machine.

Aggregates per-item verification outcomes into one receipt status and the
cashback the receipt earns.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel, ConfigDict

from cashback.schemas import (
    REJECTED_ITEM_STATUSES,
    VERIFIED_ITEM_STATUSES,
    CashbackItem,
    ItemProps,
    ItemStatus,
    ParsedReceipt,
    ProductClaim,
    ReceiptItem,
    ReceiptStatus,
)


class ItemFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_verified: bool = False
    has_rejected: bool = False
    has_non_verified: bool = False


class StatusDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ReceiptStatus
    final_cashback: Decimal


_AUTO = {
    "verified": ReceiptStatus.AUTO_VERIFIED,
    "partial": ReceiptStatus.AUTO_PARTIALLY_VERIFIED,
    "rejected": ReceiptStatus.AUTO_REJECTED,
}
_MANUAL = {
    "verified": ReceiptStatus.MANUALLY_VERIFIED,
    "partial": ReceiptStatus.MANUALLY_PARTIALLY_VERIFIED,
    "rejected": ReceiptStatus.MANUALLY_REJECTED,
}


def _cashback_items(items: Iterable[ReceiptItem]) -> list[CashbackItem]:
    return [item for item in items if isinstance(item, CashbackItem)]


def classify_items(items: Iterable[ReceiptItem]) -> ItemFlags:
    statuses = {item.verification_status for item in _cashback_items(items)}
    return ItemFlags(
        has_verified=bool(statuses & VERIFIED_ITEM_STATUSES),
        has_rejected=bool(statuses & REJECTED_ITEM_STATUSES),
        has_non_verified=ItemStatus.MANUAL_REVIEW in statuses,
    )


def calculate_final_cashback(items: Iterable[ReceiptItem]) -> Decimal:
    return sum(
        (
            item.cashback
            for item in _cashback_items(items)
            if item.verification_status in VERIFIED_ITEM_STATUSES
        ),
        Decimal("0"),
    )


def determine_receipt_status(items: list[ReceiptItem], manual: bool = False) -> StatusDecision:
    """Resolve the receipt status for *items*.

    Pending items dominate; a mix of verified and rejected items yields a
    partial verification. ``manual`` selects the ``manually_*`` family used
    when a receipt is re-evaluated after an alias decision.
    """
    flags = classify_items(items)
    family = _MANUAL if manual else _AUTO

    if flags.has_non_verified:
        status = ReceiptStatus.MANUAL_REVIEW
    elif flags.has_verified and flags.has_rejected:
        status = family["partial"]
    elif flags.has_rejected:
        status = family["rejected"]
    else:
        # verified only, or nothing was claimed at all
        status = family["verified"]

    return StatusDecision(status=status, final_cashback=calculate_final_cashback(items))


def build_late_submission(parsed: ParsedReceipt) -> tuple[list[ReceiptItem], StatusDecision]:
    """Every line becomes a product claim; nothing earns cashback."""
    items: list[ReceiptItem] = [
        ProductClaim(name=line.name, props=ItemProps.from_line(line)) for line in parsed.items
    ]
    decision = StatusDecision(
        status=ReceiptStatus.AUTO_REJECTED_LATE_SUBMISSION,
        final_cashback=Decimal("0"),
    )
    return items, decision
