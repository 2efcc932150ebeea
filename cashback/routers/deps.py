"""
Request-scoped dependencies: caller identity and the fiscal API client.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from cashback.database import get_db
from cashback.models import UserModel
from cashback.pipeline.fiscal import FiscalClient
from cashback.schemas import UserRole


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> UserModel:
    """Resolve the authenticated caller from the identity header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = db.get(UserModel, x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_roles(*roles: UserRole):
    allowed = {r.value for r in roles}

    def _check(user: UserModel = Depends(get_current_user)) -> UserModel:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return _check


def get_fiscal_client(request: Request) -> FiscalClient:
    return request.app.state.fiscal_client
