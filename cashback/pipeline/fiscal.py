"""
Fiscal data parser.

Turns a QR payload or ticket URL into a normalized :class:`ParsedReceipt`
by querying the fiscal ticket lookup service.
"""
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx

from cashback.errors import (
    IncompleteReceiptData,
    InvalidUpstreamPayload,
    MalformedReference,
    TotalsMismatch,
    UpstreamUnavailable,
)
from cashback.schemas import ParsedLineItem, ParsedReceipt

logger = logging.getLogger(__name__)

REQUIRED_QUERY_PARAMS = ("i", "f", "s", "t")


# ---------------------------------------------------------------------------
# Reference normalization
# ---------------------------------------------------------------------------

def normalize_reference(reference: str, base_url: str) -> str:
    """Return the canonical ticket-lookup URL for *reference*.

    A reference without a scheme is treated as the bare query string of
    the lookup URL.
    """
    reference = (reference or "").strip()
    if not reference:
        raise MalformedReference("QR reference is empty")

    if reference.startswith("http"):
        url = reference
    else:
        params = reference if reference.startswith("?") else f"?{reference}"
        url = f"{base_url}{params}"

    expected = urlsplit(base_url)
    actual = urlsplit(url)
    if (actual.scheme, actual.netloc, actual.path.rstrip("/")) != (
        expected.scheme,
        expected.netloc,
        expected.path.rstrip("/"),
    ):
        logger.warning("Reference does not point at the ticket service: %s", reference)
        raise MalformedReference("QR reference does not point at the fiscal ticket service")

    query = parse_qs(actual.query)
    missing = [p for p in REQUIRED_QUERY_PARAMS if not query.get(p, [""])[0].strip()]
    if missing:
        logger.warning("Reference %s lacks parameters: %s", reference, ", ".join(missing))
        raise MalformedReference(f"QR reference is missing parameters: {', '.join(missing)}")
    return url


# ---------------------------------------------------------------------------
# Upstream client
# ---------------------------------------------------------------------------

class FiscalClient:
    """Thin wrapper over the fiscal ticket lookup endpoint."""

    def __init__(self, http: httpx.Client, base_url: str, timeout: float = 10.0):
        self.http = http
        self.base_url = base_url
        self.timeout = timeout

    def fetch(self, url: str) -> dict[str, Any]:
        logger.info("Fetching fiscal ticket: %s", url)
        try:
            response = self.http.get(
                url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Ticket service answered %s for %s", exc.response.status_code, url)
            raise UpstreamUnavailable(
                f"Fiscal ticket service returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Ticket service unreachable for %s: %s", url, exc)
            raise UpstreamUnavailable("Fiscal ticket service is unavailable") from exc

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Ticket service returned non-JSON body: %.200s", response.text)
            raise InvalidUpstreamPayload("Fiscal ticket service returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise InvalidUpstreamPayload("Fiscal ticket payload is not an object")
        return payload


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def _number(value: Any) -> Decimal | None:
    """Decimal for a finite JSON number, else ``None``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return Decimal(str(value))


def _positive_int(value: Any) -> int | None:
    number = _number(value)
    if number is None or number <= 0 or number != number.to_integral_value():
        return None
    return int(number)


def _parse_date(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_item(index: int, raw: Any, measure_units: dict) -> ParsedLineItem | None:
    commodity = raw.get("commodity") if isinstance(raw, dict) else None
    commodity = commodity if isinstance(commodity, dict) else {}
    unit_code = commodity.get("measureUnitCode")
    measure_unit = "unit"
    if unit_code:
        measure_unit = measure_units.get(str(unit_code)) or "unit"

    name = commodity.get("name") or f"Unknown_{index + 1}"
    department = commodity.get("sectionCode") or "Unknown"
    unit_price = _number(commodity.get("price") or 0)
    quantity = _positive_int(commodity.get("quantity") or 1)
    total_price = _number(commodity.get("sum") or 0)

    if (
        not str(name).strip()
        or unit_price is None
        or quantity is None
        or total_price is None
        or not measure_unit
        or not str(department).strip()
    ):
        logger.warning("Dropping invalid item at index %d: %s", index, commodity)
        return None

    return ParsedLineItem(
        name=str(name),
        department=str(department),
        unit_price=unit_price,
        quantity=quantity,
        measure_unit=str(measure_unit),
        total_price=total_price,
    )


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def parse_ticket(payload: dict[str, Any]) -> ParsedReceipt:
    """Validate and normalize a ticket service payload."""
    ticket = payload.get("ticket")
    if not isinstance(ticket, dict) or not ticket.get("fiscalId"):
        raise InvalidUpstreamPayload("Ticket or fiscal id not found in payload")

    transaction_id = ticket.get("transactionId")
    if not transaction_id:
        raise IncompleteReceiptData("Transaction id not found")

    date = _parse_date(ticket.get("transactionDate"))
    if date is None:
        logger.warning("Invalid transaction date: %r", ticket.get("transactionDate"))
        raise IncompleteReceiptData("Transaction date is missing or invalid")

    total_amount = _number(ticket.get("totalSum"))
    if total_amount is None:
        logger.warning("Invalid total amount: %r", ticket.get("totalSum"))
        raise IncompleteReceiptData("Total amount is missing or invalid")

    taxes = payload.get("taxes") or []
    if not isinstance(taxes, list) or not all(isinstance(tax, dict) for tax in taxes):
        logger.warning("Malformed taxes in payload: %r", taxes)
        raise IncompleteReceiptData("Tax data is invalid")
    tax_amount = Decimal("0")
    tax_rate = Decimal("0")
    if taxes:
        for tax in taxes:
            tax_sum = _number(tax.get("sum") or 0)
            if tax_sum is None:
                raise IncompleteReceiptData("Tax amount is invalid")
            tax_amount += tax_sum
        rate = _number(taxes[0].get("rate") or 0)
        if rate is None:
            raise IncompleteReceiptData("Tax rate is invalid")
        tax_rate = rate
    else:
        logger.info("No taxes in payload for %s, using zero defaults", ticket["fiscalId"])

    kkt_code = payload.get("kkmFnsId")
    kkt_serial_number = payload.get("kkmSerialNumber")
    if not kkt_code or not kkt_serial_number:
        raise IncompleteReceiptData("Cash register code or serial number not found")

    payments = ticket.get("payments")
    payment_type = None
    if isinstance(payments, list) and payments and isinstance(payments[0], dict):
        payment_type = payments[0].get("paymentType")
    elif payments:
        logger.info("Ignoring malformed payments for %s: %r", ticket["fiscalId"], payments)
    payment_method = str(payment_type) if payment_type not in (None, "") else None

    measure_units = payload.get("measureUnits")
    if not isinstance(measure_units, dict):
        measure_units = {}
    items = [
        item
        for index, raw in enumerate(ticket.get("items") or [])
        if (item := _parse_item(index, raw, measure_units)) is not None
    ]
    if not items:
        logger.info("No valid items in payload for %s", ticket["fiscalId"])
    else:
        items_total = sum((item.total_price for item in items), Decimal("0"))
        if items_total != total_amount:
            logger.warning(
                "Total mismatch for %s: items %s != ticket %s",
                ticket["fiscalId"], items_total, total_amount,
            )
            raise TotalsMismatch(
                f"Sum of item totals ({items_total}) does not match receipt total ({total_amount})"
            )

    return ParsedReceipt(
        transaction_id=str(transaction_id),
        fiscal_id=str(ticket["fiscalId"]),
        date=date,
        total_amount=total_amount,
        tax_amount=tax_amount,
        tax_rate=tax_rate,
        kkt_code=str(kkt_code),
        kkt_serial_number=str(kkt_serial_number),
        payment_method=payment_method,
        items=items,
    )


def parse_receipt_data(reference: str, client: FiscalClient) -> ParsedReceipt:
    """Normalize *reference*, fetch the ticket, and parse it."""
    url = normalize_reference(reference, client.base_url)
    receipt = parse_ticket(client.fetch(url))
    logger.info(
        "Parsed fiscal receipt %s: %d items, total %s",
        receipt.fiscal_id, len(receipt.items), receipt.total_amount,
    )
    return receipt
