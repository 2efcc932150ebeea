"""
Integration tests for the cashback HTTP endpoints.
"""
from decimal import Decimal

import pytest

from cashback.models import ProductAliasModel
from tests.conftest import make_ticket, qr_for

CUSTOMER = {"X-User-Id": "user-1"}
VERIFIER = {"X-User-Id": "verifier"}
ADMIN = {"X-User-Id": "admin"}


@pytest.fixture()
def seeded(make_user, make_product):
    make_user("user-1")
    make_user("user-2")
    make_user("verifier", role="alias_verifier")
    make_user("admin", role="administrator")
    make_product("p-milk", "Milk 1L", cashback="100")
    make_product("p-bread", "Bread", cashback="20")


def _submit(client, tickets, fiscal_id, items, mappings, headers=CUSTOMER, **ticket_args):
    qr = tickets.add(make_ticket(fiscal_id, items, **ticket_args))
    return client.post(
        "/api/receipts/submit",
        json={"qr_data": qr, "item_mappings": mappings},
        headers=headers,
    )


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}


class TestSubmitReceipt:
    def test_submit_success(self, client, seeded, tickets):
        resp = _submit(client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Receipt submitted and will be processed."
        assert body["receipt"]["verification_status"] == "auto_verified"
        assert Decimal(body["receipt"]["final_cashback"]) == Decimal("100")
        assert body["receipt"]["items"][0]["kind"] == "cashback_item"

    def test_late_submission_message(self, client, seeded, tickets):
        resp = _submit(
            client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"}, days_ago=30
        )
        assert resp.status_code == 201
        assert "deadline" in resp.json()["message"]
        assert resp.json()["receipt"]["verification_status"] == "auto_rejected_late_submission"

    def test_requires_identity(self, client, seeded, tickets):
        resp = _submit(client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"},
                       headers={})
        assert resp.status_code == 401

    def test_unknown_user(self, client, seeded, tickets):
        resp = _submit(client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"},
                       headers={"X-User-Id": "ghost"})
        assert resp.status_code == 401

    def test_empty_mappings(self, client, seeded):
        resp = client.post(
            "/api/receipts/submit",
            json={"qr_data": qr_for("F1"), "item_mappings": {}},
            headers=CUSTOMER,
        )
        assert resp.status_code == 422

    def test_malformed_reference(self, client, seeded):
        resp = client.post(
            "/api/receipts/submit",
            json={"qr_data": "i=F1", "item_mappings": {"Milk 1L": "p-milk"}},
            headers=CUSTOMER,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "malformed_reference"

    def test_duplicate(self, client, seeded, tickets):
        _submit(client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"})
        resp = client.post(
            "/api/receipts/submit",
            json={"qr_data": qr_for("F1"), "item_mappings": {"Milk 1L": "p-milk"}},
            headers=CUSTOMER,
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "duplicate_submission"

    def test_invalid_product(self, client, seeded, tickets):
        resp = _submit(client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "nope"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_product_reference"

    def test_upstream_down(self, client, seeded):
        resp = client.post(
            "/api/receipts/submit",
            json={"qr_data": qr_for("UNKNOWN"), "item_mappings": {"Milk 1L": "p-milk"}},
            headers=CUSTOMER,
        )
        assert resp.status_code == 502
        assert resp.json()["error"] == "upstream_unavailable"


class TestReceipts:
    def test_list_empty(self, client, seeded):
        resp = client.get("/api/receipts/me", headers=CUSTOMER)
        assert resp.status_code == 200
        assert resp.json() == {"data": [], "meta": {"total": 0}}

    def test_list_after_submit(self, client, seeded, tickets):
        _submit(client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"})
        resp = client.get("/api/receipts/me", headers=CUSTOMER)
        assert resp.json()["meta"]["total"] == 1

    def test_get_own_receipt(self, client, seeded, tickets):
        rid = _submit(
            client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"}
        ).json()["receipt"]["id"]
        resp = client.get(f"/api/receipts/{rid}", headers=CUSTOMER)
        assert resp.status_code == 200
        assert resp.json()["fiscal_id"] == "F1"

    def test_other_users_receipt_hidden(self, client, seeded, tickets):
        rid = _submit(
            client, tickets, "F1", [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"}
        ).json()["receipt"]["id"]
        resp = client.get(f"/api/receipts/{rid}", headers={"X-User-Id": "user-2"})
        assert resp.status_code == 404

    def test_get_not_found(self, client, seeded):
        resp = client.get("/api/receipts/nonexistent", headers=CUSTOMER)
        assert resp.status_code == 404


class TestProducts:
    def test_available(self, client, seeded, make_product):
        make_product("p-old", "Old", published=False)
        resp = client.get("/api/products/available", headers=CUSTOMER)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()] == ["p-bread", "p-milk"]

    def test_none_available(self, client, make_user):
        make_user("user-1")
        resp = client.get("/api/products/available", headers=CUSTOMER)
        assert resp.status_code == 404


class TestAliasDecision:
    @pytest.fixture()
    def alias_id(self, client, db, seeded, tickets):
        resp = _submit(client, tickets, "F1", [("Moloko", 500, 1, 500)], {"Moloko": "p-milk"})
        assert resp.json()["receipt"]["verification_status"] == "manual_review"
        return db.query(ProductAliasModel).filter_by(normalized_name="moloko").one().id

    def test_customer_forbidden(self, client, alias_id):
        resp = client.post(
            f"/api/product-aliases/{alias_id}/decision",
            json={"decision": "verified"}, headers=CUSTOMER,
        )
        assert resp.status_code == 403

    def test_verify_propagates(self, client, alias_id):
        resp = client.post(
            f"/api/product-aliases/{alias_id}/decision",
            json={"decision": "verified"}, headers=VERIFIER,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["alias"]["verification_status"] == "verified"
        assert len(body["affected_receipts"]) == 1
        assert body["failed_receipts"] == []

        receipt = client.get(f"/api/receipts/{body['affected_receipts'][0]}", headers=CUSTOMER).json()
        assert receipt["verification_status"] == "manually_verified"
        balance = client.get("/api/users/me/balance", headers=CUSTOMER).json()
        assert Decimal(balance["balance"]) == Decimal("100")

    def test_second_decision_conflicts(self, client, alias_id):
        url = f"/api/product-aliases/{alias_id}/decision"
        client.post(url, json={"decision": "rejected"}, headers=ADMIN)
        resp = client.post(url, json={"decision": "verified"}, headers=ADMIN)
        assert resp.status_code == 409
        assert resp.json()["error"] == "illegal_alias_transition"

    def test_bad_decision_value(self, client, alias_id):
        resp = client.post(
            f"/api/product-aliases/{alias_id}/decision",
            json={"decision": "unverified"}, headers=VERIFIER,
        )
        assert resp.status_code == 422

    def test_repropagate_requires_admin(self, client, alias_id):
        url = f"/api/product-aliases/{alias_id}/decision"
        client.post(url, json={"decision": "verified"}, headers=VERIFIER)

        forbidden = client.post(f"/api/product-aliases/{alias_id}/repropagate", headers=VERIFIER)
        assert forbidden.status_code == 403

        resp = client.post(f"/api/product-aliases/{alias_id}/repropagate", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json()["alias"]["verification_status"] == "verified"
        assert resp.json()["affected_receipts"] == []

    def test_repropagate_undecided(self, client, alias_id):
        resp = client.post(f"/api/product-aliases/{alias_id}/repropagate", headers=ADMIN)
        assert resp.status_code == 409

    def test_unknown_alias(self, client, seeded):
        resp = client.post(
            "/api/product-aliases/nope/decision", json={"decision": "verified"}, headers=VERIFIER
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "alias_not_found"


class TestCashbackRequests:
    @pytest.fixture()
    def funded(self, client, seeded, tickets):
        """user-1 earns 200 from two verified receipts."""
        for fiscal_id in ("F1", "F2"):
            resp = _submit(client, tickets, fiscal_id, [("Milk 1L", 500, 1, 500)], {"Milk 1L": "p-milk"})
            assert resp.status_code == 201

    def test_create_pending(self, client, funded):
        resp = client.post("/api/cashback-requests", json={"amount": "50"}, headers=CUSTOMER)
        assert resp.status_code == 201
        assert resp.json()["verification_status"] == "pending"
        balance = client.get("/api/users/me/balance", headers=CUSTOMER).json()
        assert Decimal(balance["balance"]) == Decimal("200")

    def test_non_positive_amount(self, client, funded):
        resp = client.post("/api/cashback-requests", json={"amount": "0"}, headers=CUSTOMER)
        assert resp.status_code == 422

    def test_approval_reduces_balance(self, client, funded):
        rid = client.post(
            "/api/cashback-requests", json={"amount": "150"}, headers=CUSTOMER
        ).json()["id"]

        forbidden = client.patch(
            f"/api/cashback-requests/{rid}", json={"verification_status": "approved"},
            headers=CUSTOMER,
        )
        assert forbidden.status_code == 403

        resp = client.patch(
            f"/api/cashback-requests/{rid}", json={"verification_status": "approved"},
            headers=ADMIN,
        )
        assert resp.status_code == 200
        assert resp.json()["verification_status"] == "approved"
        balance = client.get("/api/users/me/balance", headers=CUSTOMER).json()
        assert Decimal(balance["balance"]) == Decimal("50")

    def test_recompute_and_reconcile(self, client, funded):
        resp = client.post("/api/users/user-1/balance/recompute", headers=ADMIN)
        assert resp.status_code == 200
        assert Decimal(resp.json()["balance"]) == Decimal("200")

        resp = client.post("/api/balances/reconcile", headers=ADMIN)
        assert resp.json() == {"reconciled": 0}

    def test_recompute_unknown_user(self, client, funded):
        resp = client.post("/api/users/ghost/balance/recompute", headers=ADMIN)
        assert resp.status_code == 404
