"""
Product catalog and product alias models.
"""
from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cashback.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fold_name(name: str) -> str:
    """Case-insensitive comparison key for product and receipt item names."""
    return name.strip().casefold()


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    canonical_name = Column(String, nullable=False)
    cashback_eligible = Column(Boolean, nullable=False, default=False)
    cashback_amount = Column(Numeric(12, 2), nullable=False, default=0)
    published = Column(Boolean, nullable=False, default=True)
    unpublish_date = Column(Date)  # last day the product may be claimed
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    aliases = relationship(
        "ProductAliasModel",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def is_available(self, on: date | None = None) -> bool:
        """Eligible, published, and not past its unpublish date."""
        if not self.cashback_eligible or not self.published:
            return False
        if self.unpublish_date is not None:
            on = on or _utcnow().date()
            return on <= self.unpublish_date
        return True


class ProductAliasModel(Base):
    """Alternative receipt name for a product, subject to one verification decision."""
    __tablename__ = "product_aliases"
    __table_args__ = (
        UniqueConstraint("product_id", "normalized_name", name="uq_alias_product_name"),
    )

    id = Column(String, primary_key=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False, index=True)
    alternative_name = Column(String, nullable=False)
    normalized_name = Column(String, nullable=False)  # casefolded alternative_name
    verification_status = Column(String, nullable=False, default="unverified", index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    decided_at = Column(DateTime(timezone=True))

    product = relationship("ProductModel", back_populates="aliases")
