"""
Storage operations the reconciliation pipeline relies on: unique-or-fail
create, conditional alias update, and catalog / receipt lookups.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cashback.errors import (
    AliasCreationFailed,
    AliasNotFound,
    DuplicateSubmission,
    IllegalAliasTransition,
)
from cashback.models import (
    ProductAliasModel,
    ProductModel,
    PromoSettingsModel,
    ReceiptModel,
    fold_name,
)
from cashback.schemas import AliasStatus, ReceiptStatus

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------

def receipt_exists(db: Session, qr_data: str | None = None, fiscal_id: str | None = None) -> bool:
    query = db.query(ReceiptModel.id)
    if qr_data is not None and query.filter(ReceiptModel.qr_data == qr_data).first():
        return True
    if fiscal_id is not None and query.filter(ReceiptModel.fiscal_id == fiscal_id).first():
        return True
    return False


def create_receipt(db: Session, receipt: ReceiptModel) -> ReceiptModel:
    """Insert *receipt* together with any pending aliases, atomically.

    The unique constraints on ``qr_data`` and ``fiscal_id`` are the
    authority on duplicates; a lost race surfaces as DuplicateSubmission.
    """
    qr_data, fiscal_id = receipt.qr_data, receipt.fiscal_id
    db.add(receipt)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if receipt_exists(db, qr_data=qr_data, fiscal_id=fiscal_id):
            logger.warning("Duplicate receipt rejected at insert: fiscal_id=%s", fiscal_id)
            raise DuplicateSubmission("Receipt has already been submitted") from exc
        # the other unique key in the unit of work is the alias name
        logger.warning("Alias name collision while storing receipt %s", fiscal_id)
        raise AliasCreationFailed(
            "A product alias was created concurrently, please resubmit the receipt"
        ) from exc
    db.refresh(receipt)
    return receipt


def manual_review_receipts(db: Session) -> list[ReceiptModel]:
    return (
        db.query(ReceiptModel)
        .filter(ReceiptModel.verification_status == ReceiptStatus.MANUAL_REVIEW.value)
        .order_by(ReceiptModel.created_at)
        .all()
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def load_catalog(db: Session, product_ids: Iterable[str]) -> dict[str, ProductModel]:
    """Products by id, aliases populated. Availability is checked by the matcher."""
    ids = set(product_ids)
    if not ids:
        return {}
    products = db.query(ProductModel).filter(ProductModel.id.in_(ids)).all()
    return {p.id: p for p in products}


def available_products(db: Session) -> list[ProductModel]:
    products = (
        db.query(ProductModel)
        .filter(ProductModel.cashback_eligible.is_(True), ProductModel.published.is_(True))
        .order_by(ProductModel.canonical_name)
        .all()
    )
    return [p for p in products if p.is_available()]


def alias_factory(db: Session) -> Callable[[ProductModel, str], ProductAliasModel]:
    """Alias factory bound to *db*; new aliases commit with the receipt."""

    def create_alias(product: ProductModel, name: str) -> ProductAliasModel:
        try:
            alias = ProductAliasModel(
                id=new_id(),
                alternative_name=name,
                normalized_name=fold_name(name),
                verification_status=AliasStatus.UNVERIFIED.value,
                created_at=datetime.now(timezone.utc),
            )
            alias.product = product
            db.add(alias)
        except SQLAlchemyError as exc:
            logger.error("Failed to create alias '%s' for product %s", name, product.id, exc_info=True)
            raise AliasCreationFailed(f"Could not create product alias for {name}") from exc
        return alias

    return create_alias


def transition_alias(db: Session, alias_id: str, target: AliasStatus) -> ProductAliasModel:
    """Move an alias out of ``unverified`` with a compare-and-swap update."""
    updated = (
        db.query(ProductAliasModel)
        .filter(
            ProductAliasModel.id == alias_id,
            ProductAliasModel.verification_status == AliasStatus.UNVERIFIED.value,
        )
        .update(
            {
                ProductAliasModel.verification_status: target.value,
                ProductAliasModel.decided_at: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        alias = db.get(ProductAliasModel, alias_id)
        if alias is None:
            raise AliasNotFound(f"Product alias {alias_id} not found")
        logger.warning(
            "Rejected transition of alias %s from %s to %s",
            alias_id, alias.verification_status, target.value,
        )
        raise IllegalAliasTransition(
            f"Alias is already {alias.verification_status}; only unverified aliases can be decided"
        )
    db.commit()
    return db.get(ProductAliasModel, alias_id)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def configured_receipt_valid_days(db: Session) -> Optional[int]:
    row = db.get(PromoSettingsModel, 1)
    return row.receipt_valid_days if row else None
