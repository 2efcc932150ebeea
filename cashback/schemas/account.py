"""
Cashback request and balance schemas.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from cashback.schemas.enums import CashbackRequestStatus


class CashbackRequestCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)


class CashbackRequestUpdate(BaseModel):
    verification_status: CashbackRequestStatus


class CashbackRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    requester_id: str
    amount: Decimal
    verification_status: str
    created_at: datetime
    updated_at: datetime


class BalanceResponse(BaseModel):
    user_id: str
    balance: Decimal


class ReconcileResponse(BaseModel):
    reconciled: int
