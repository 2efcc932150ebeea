"""
User account, cashback withdrawal requests, and promo settings.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String

from cashback.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True)
    role = Column(String, nullable=False, default="customer")  # customer, alias_verifier, administrator
    account = Column(Numeric(14, 2), nullable=False, default=0)
    balance_stale = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class CashbackRequestModel(Base):
    __tablename__ = "cashback_requests"

    id = Column(String, primary_key=True)
    requester_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    verification_status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class PromoSettingsModel(Base):
    """Single-row promo configuration editable by operators."""
    __tablename__ = "promo_settings"

    id = Column(Integer, primary_key=True, default=1)
    receipt_valid_days = Column(Integer)  # may hold an invalid value, see pipeline.window
