"""
Catalog and alias decision schemas.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductAliasRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    alternative_name: str
    verification_status: str
    created_at: datetime
    decided_at: Optional[datetime] = None


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    canonical_name: str
    cashback_eligible: bool
    cashback_amount: Decimal
    unpublish_date: Optional[date] = None
    aliases: list[ProductAliasRead] = Field(default_factory=list)


class AliasDecisionRequest(BaseModel):
    decision: Literal["verified", "rejected"]


class FailedReceipt(BaseModel):
    receipt_id: str
    error: str


class AliasDecisionResponse(BaseModel):
    alias: ProductAliasRead
    affected_receipts: list[str] = Field(default_factory=list)
    failed_receipts: list[FailedReceipt] = Field(default_factory=list)
