"""
SQLAlchemy model for receipt persistence.
"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String

from cashback.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptModel(Base):
    __tablename__ = "receipts"

    id = Column(String, primary_key=True)
    qr_data = Column(String, nullable=False, unique=True)
    fiscal_id = Column(String, nullable=False, unique=True)
    transaction_id = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    date = Column(DateTime(timezone=True), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 2), nullable=False, default=0)
    kkt_code = Column(String, nullable=False)
    kkt_serial_number = Column(String, nullable=False)
    payment_method = Column(String)

    # list of ProductClaim / CashbackItem dicts, see cashback.schemas.receipt
    items = Column(JSON, nullable=False, default=list)
    verification_status = Column(String, nullable=False, index=True)
    final_cashback = Column(Numeric(14, 2), nullable=False, default=0)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}
