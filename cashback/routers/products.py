"""
Catalog and alias decision endpoints.

GET  /api/products/available                 — cashback-eligible products
POST /api/product-aliases/{id}/decision      — verify or reject an alias
POST /api/product-aliases/{id}/repropagate   — retry propagation of a decided alias
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cashback import store
from cashback.database import get_db
from cashback.models import UserModel
from cashback.pipeline import PropagationResult, decide_alias, repropagate_alias
from cashback.routers.deps import get_current_user, require_roles
from cashback.schemas import (
    AliasDecisionRequest,
    AliasDecisionResponse,
    FailedReceipt,
    ProductAliasRead,
    ProductRead,
    UserRole,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ── GET /api/products/available ──────────────────────────────────────────
@router.get("/products/available", response_model=List[ProductRead])
def available(
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    products = store.available_products(db)
    if not products:
        logger.info("No cashback-eligible products for user %s", user.id)
        raise HTTPException(status_code=404, detail="No cashback products available")
    logger.info("Retrieved %d cashback-eligible products for user %s", len(products), user.id)
    return [ProductRead.model_validate(p) for p in products]


# ── POST /api/product-aliases/{alias_id}/decision ────────────────────────
@router.post("/product-aliases/{alias_id}/decision", response_model=AliasDecisionResponse)
def decide(
    alias_id: str,
    req: AliasDecisionRequest,
    user: UserModel = Depends(require_roles(UserRole.ALIAS_VERIFIER, UserRole.ADMINISTRATOR)),
    db: Session = Depends(get_db),
):
    logger.info("User %s sets alias %s to %s", user.id, alias_id, req.decision)
    return _decision_response(decide_alias(db, alias_id, req.decision))


# ── POST /api/product-aliases/{alias_id}/repropagate ─────────────────────
@router.post("/product-aliases/{alias_id}/repropagate", response_model=AliasDecisionResponse)
def repropagate(
    alias_id: str,
    user: UserModel = Depends(require_roles(UserRole.ADMINISTRATOR)),
    db: Session = Depends(get_db),
):
    logger.info("User %s re-propagates alias %s", user.id, alias_id)
    return _decision_response(repropagate_alias(db, alias_id))


def _decision_response(result: PropagationResult) -> AliasDecisionResponse:
    return AliasDecisionResponse(
        alias=ProductAliasRead.model_validate(result.alias),
        affected_receipts=[r.id for r in result.affected],
        failed_receipts=[FailedReceipt(receipt_id=rid, error=err) for rid, err in result.failed],
    )
