"""
Verification states used across receipts, items, aliases and requests.
"""
from enum import Enum


class AliasStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ItemStatus(str, Enum):
    """Per-item verification outcome of a cashback item."""

    AUTO_VERIFIED_CANON = "auto_verified_canon"
    AUTO_VERIFIED_ALIAS = "auto_verified_alias"
    AUTO_REJECTED_ALIAS = "auto_rejected_alias"
    MANUAL_REVIEW = "manual_review"
    MANUALLY_VERIFIED_ALIAS = "manually_verified_alias"
    MANUALLY_REJECTED_ALIAS = "manually_rejected_alias"


class ReceiptStatus(str, Enum):
    AUTO_VERIFIED = "auto_verified"
    AUTO_PARTIALLY_VERIFIED = "auto_partially_verified"
    AUTO_REJECTED = "auto_rejected"
    MANUAL_REVIEW = "manual_review"
    MANUALLY_VERIFIED = "manually_verified"
    MANUALLY_PARTIALLY_VERIFIED = "manually_partially_verified"
    MANUALLY_REJECTED = "manually_rejected"
    AUTO_REJECTED_LATE_SUBMISSION = "auto_rejected_late_submission"


class CashbackRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MANUAL_REVIEW = "manual_review"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ALIAS_VERIFIER = "alias_verifier"
    ADMINISTRATOR = "administrator"


VERIFIED_ITEM_STATUSES = frozenset({
    ItemStatus.AUTO_VERIFIED_CANON,
    ItemStatus.AUTO_VERIFIED_ALIAS,
    ItemStatus.MANUALLY_VERIFIED_ALIAS,
})

REJECTED_ITEM_STATUSES = frozenset({
    ItemStatus.AUTO_REJECTED_ALIAS,
    ItemStatus.MANUALLY_REJECTED_ALIAS,
})

# Receipts whose final cashback counts towards the account balance
BALANCE_RECEIPT_STATUSES = frozenset({
    ReceiptStatus.AUTO_VERIFIED,
    ReceiptStatus.MANUALLY_VERIFIED,
    ReceiptStatus.AUTO_PARTIALLY_VERIFIED,
    ReceiptStatus.MANUALLY_PARTIALLY_VERIFIED,
})
