"""
Error taxonomy for receipt reconciliation.

Every error is terminal for the request that triggered it. The HTTP layer
renders them through :func:`cashback_error_handler`.
"""
from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class CashbackError(Exception):
    status_code: int = 400
    code: str = "cashback_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


# ---------------------------------------------------------------------------
# Fiscal data parser
# ---------------------------------------------------------------------------

class MalformedReference(CashbackError):
    status_code = 400
    code = "malformed_reference"


class UpstreamUnavailable(CashbackError):
    status_code = 502
    code = "upstream_unavailable"


class InvalidUpstreamPayload(CashbackError):
    status_code = 502
    code = "invalid_upstream_payload"


class IncompleteReceiptData(CashbackError):
    status_code = 422
    code = "incomplete_receipt_data"


class TotalsMismatch(CashbackError):
    status_code = 422
    code = "totals_mismatch"


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------

class InvalidProductReference(CashbackError):
    status_code = 400
    code = "invalid_product_reference"


class InvalidClaimMapping(CashbackError):
    status_code = 400
    code = "invalid_claim_mapping"


class AliasCreationFailed(CashbackError):
    status_code = 500
    code = "alias_creation_failed"


# ---------------------------------------------------------------------------
# Alias decisions / storage
# ---------------------------------------------------------------------------

class IllegalAliasTransition(CashbackError):
    status_code = 409
    code = "illegal_alias_transition"


class DuplicateSubmission(CashbackError):
    status_code = 409
    code = "duplicate_submission"


class ConcurrentReceiptUpdate(CashbackError):
    """Optimistic write kept losing to a concurrent writer. Transient."""
    status_code = 409
    code = "concurrent_receipt_update"


class NotFound(CashbackError):
    status_code = 404
    code = "not_found"


class AliasNotFound(NotFound):
    code = "alias_not_found"


def cashback_error_handler(request: Request, exc: CashbackError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )
