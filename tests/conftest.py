"""
Shared pytest fixtures — in-memory SQLite, a fake fiscal ticket service,
and a FastAPI TestClient wired to both.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cashback.database import Base, get_db
from cashback.main import app
from cashback.models import ProductAliasModel, ProductModel, UserModel, fold_name
from cashback.pipeline.fiscal import FiscalClient
from cashback.routers.deps import get_fiscal_client

FISCAL_URL = "https://consumer.oofd.kz/api/tickets/get-by-url"

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


def qr_for(fiscal_id: str) -> str:
    """QR payload (query string form) that the fake service resolves to *fiscal_id*."""
    return f"i={fiscal_id}&f=600300&s=1500.00&t=20250101T120000"


def make_ticket(fiscal_id, items, days_ago=1, total=None, **extra):
    """Ticket service payload. *items* are ``(name, price, quantity, sum)`` tuples."""
    date = datetime.now(timezone.utc) - timedelta(days=days_ago)
    payload = {
        "ticket": {
            "transactionId": f"tx-{fiscal_id}",
            "fiscalId": fiscal_id,
            "transactionDate": date.strftime("%Y-%m-%dT%H:%M:%S"),
            "totalSum": total if total is not None else sum(i[3] for i in items),
            "payments": [{"paymentType": 1, "sum": 0}],
            "items": [
                {
                    "commodity": {
                        "name": name,
                        "sectionCode": "1",
                        "price": price,
                        "quantity": quantity,
                        "measureUnitCode": "796",
                        "sum": line_sum,
                    }
                }
                for name, price, quantity, line_sum in items
            ],
        },
        "taxes": [{"sum": 120, "rate": 12}],
        "kkmFnsId": "010101012345",
        "kkmSerialNumber": "SWK00012345",
        "measureUnits": {"796": "pcs"},
    }
    payload.update(extra)
    return payload


class TicketService:
    """In-memory stand-in for the fiscal ticket lookup API, keyed by ``i``."""

    def __init__(self):
        self.tickets: dict[str, dict] = {}
        self.calls = 0

    def add(self, payload: dict) -> str:
        fiscal_id = payload["ticket"]["fiscalId"]
        self.tickets[fiscal_id] = payload
        return qr_for(fiscal_id)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        payload = self.tickets.get(request.url.params.get("i"))
        if payload is None:
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, json=payload)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def tickets():
    return TicketService()


@pytest.fixture()
def fiscal_client(tickets):
    http = httpx.Client(transport=httpx.MockTransport(tickets.handler))
    try:
        yield FiscalClient(http, FISCAL_URL)
    finally:
        http.close()


@pytest.fixture()
def make_user(db):
    def _make(user_id="user-1", role="customer"):
        user = UserModel(id=user_id, username=f"name-{user_id}", role=role)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def make_product(db):
    def _make(product_id, name, cashback="100", aliases=(), **fields):
        product = ProductModel(
            id=product_id,
            canonical_name=name,
            cashback_eligible=fields.pop("cashback_eligible", True),
            cashback_amount=Decimal(cashback),
            published=fields.pop("published", True),
            **fields,
        )
        for index, (alias_name, status) in enumerate(aliases):
            product.aliases.append(
                ProductAliasModel(
                    id=f"{product_id}-alias-{index}",
                    alternative_name=alias_name,
                    normalized_name=fold_name(alias_name),
                    verification_status=status,
                )
            )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture()
def client(db, fiscal_client):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_fiscal_client] = lambda: fiscal_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
