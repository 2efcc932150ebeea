"""
Receipt contracts: parsed fiscal data, the receipt item tagged union, and
API envelopes.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from cashback.schemas.enums import ItemStatus


# ---------------------------------------------------------------------------
# Parsed fiscal data (ephemeral)
# ---------------------------------------------------------------------------

class ParsedLineItem(BaseModel):
    name: str
    department: str
    unit_price: Decimal
    quantity: int = Field(..., gt=0)
    measure_unit: str
    total_price: Decimal


class ParsedReceipt(BaseModel):
    transaction_id: str
    fiscal_id: str
    date: datetime
    total_amount: Decimal
    tax_amount: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    kkt_code: str
    kkt_serial_number: str
    payment_method: Optional[str] = None
    items: list[ParsedLineItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Receipt items (stored embedded in the receipt)
# ---------------------------------------------------------------------------

class ItemProps(BaseModel):
    unit_price: Decimal
    quantity: int = Field(..., gt=0)
    measure_unit: str
    total_price: Decimal
    department: str

    @classmethod
    def from_line(cls, line: ParsedLineItem) -> "ItemProps":
        return cls(
            unit_price=line.unit_price,
            quantity=line.quantity,
            measure_unit=line.measure_unit,
            total_price=line.total_price,
            department=line.department,
        )


class ProductClaim(BaseModel):
    """A line item with no cashback path."""
    kind: Literal["product_claim"] = "product_claim"
    name: str
    props: ItemProps


class CashbackItem(BaseModel):
    """A line item claimed as a catalog product."""
    kind: Literal["cashback_item"] = "cashback_item"
    name: str
    props: ItemProps
    claimed_product_id: str
    product_alias_id: Optional[str] = None
    verification_status: ItemStatus
    cashback: Decimal = Field(..., description="Fixed at match time")


ReceiptItem = Annotated[Union[ProductClaim, CashbackItem], Field(discriminator="kind")]

_ITEMS_ADAPTER = TypeAdapter(list[ReceiptItem])


def dump_items(items: list[ReceiptItem]) -> list[dict]:
    """Serialize items for the JSON column."""
    return _ITEMS_ADAPTER.dump_python(items, mode="json")


def load_items(raw: list[dict] | None) -> list[ReceiptItem]:
    return _ITEMS_ADAPTER.validate_python(raw or [])


# ---------------------------------------------------------------------------
# API request / response envelopes
# ---------------------------------------------------------------------------

class SubmitReceiptRequest(BaseModel):
    qr_data: str = Field(..., min_length=1)
    item_mappings: dict[str, str] = Field(
        ..., min_length=1, description="Receipt item name -> product id"
    )


class ReceiptRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    qr_data: str
    fiscal_id: str
    transaction_id: str
    user_id: str
    date: datetime
    total_amount: Decimal
    tax_amount: Decimal
    tax_rate: Decimal
    kkt_code: str
    kkt_serial_number: str
    payment_method: Optional[str] = None
    items: list[ReceiptItem] = Field(default_factory=list)
    verification_status: str
    final_cashback: Decimal
    created_at: datetime
    updated_at: datetime


class SubmitReceiptResponse(BaseModel):
    message: str
    receipt: ReceiptRead


class ReceiptListMeta(BaseModel):
    total: int


class ReceiptListResponse(BaseModel):
    data: list[ReceiptRead]
    meta: ReceiptListMeta
