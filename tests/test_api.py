"""End-to-end tests that drive the API through FastAPI's TestClient."""

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from toolcrib import create_app
from toolcrib.core.security import issue_token_pair
from toolcrib.crud.users import create_user
from toolcrib.db.session import Database, build_engine
from toolcrib.services.tickets import ticket_day_prefix, utc_today


@pytest.fixture()
def app(tmp_path):
    database = Database(build_engine(f"sqlite:///{tmp_path / 'api.db'}"))
    return create_app(database=database)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def accounts(app, client):
    db = app.state.database.session()
    try:
        admin = create_user(
            db,
            {
                "document_number": "9001",
                "full_name": "Alba Admin",
                "email": "alba@example.com",
                "role": "Administrator",
                "password": "admin-pw",
            },
        )
        operator = create_user(
            db,
            {
                "document_number": "9002",
                "full_name": "Oscar Operator",
                "email": "oscar@example.com",
                "role": "Operator",
                "password": "operator-pw",
            },
        )
        return {"admin": admin.id, "operator": operator.id}
    finally:
        db.close()


def _h(user_id, role):
    token = issue_token_pair(user_id, role).access_token
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_h(accounts):
    return _h(accounts["admin"], "Administrator")


@pytest.fixture()
def operator_h(accounts):
    return _h(accounts["operator"], "Operator")


def _create_tool(client, headers, total=10, name="Rotary hammer"):
    r = client.post(
        "/api/v1/tools",
        json={"name": name, "responsible": "Warehouse", "quantity_total": total},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


def _tool_counts(client, headers, tool_id):
    r = client.get(f"/api/v1/tools/{tool_id}", headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    return (body["quantity_total"], body["quantity_available"], body["quantity_on_loan"])


def _new_ticket(client, headers):
    r = client.get("/api/v1/loans/generate-ticket", headers=headers)
    assert r.status_code == 200, r.text
    return r.json()["ticket_number"]


def _loan_body(tool_id, ticket, quantity=1):
    return {
        "ticket_number": ticket,
        "tool_id": tool_id,
        "quantity": quantity,
        "responsible": "Luis Perez",
        "usage_location": "North site",
    }


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/v1/loans"),
        ("post", "/api/v1/loans"),
        ("get", "/api/v1/loans/generate-ticket"),
        ("get", "/api/v1/loans/1"),
        ("put", "/api/v1/loans/1/return"),
        ("get", "/api/v1/tools"),
        ("post", "/api/v1/tools"),
        ("delete", "/api/v1/tools/1"),
        ("get", "/api/v1/users"),
        ("post", "/api/v1/users/register"),
        ("get", "/api/v1/reports/summary"),
        ("get", "/api/v1/products"),
        ("post", "/api/v1/products"),
        ("post", "/api/v1/reports/withdrawals"),
        ("get", "/api/v1/reports/statistics"),
    ],
)
def test_protected_endpoints_require_a_bearer_token(client, method, path):
    r = getattr(client, method)(path)
    assert r.status_code == 401
    body = r.json()
    assert body["code"] == "unauthenticated"
    assert body["message"]


def test_checkout_without_token_changes_nothing(client, admin_h):
    tool = _create_tool(client, admin_h, total=3)
    ticket = _new_ticket(client, admin_h)

    r = client.post("/api/v1/loans", json=_loan_body(tool["id"], ticket))
    assert r.status_code == 401

    assert _tool_counts(client, admin_h, tool["id"]) == (3, 3, 0)
    assert client.get("/api/v1/loans", headers=admin_h).json()["pagination"]["total"] == 0


def test_invalid_and_refresh_tokens_are_rejected(client, accounts):
    r = client.get("/api/v1/tools", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    refresh = issue_token_pair(accounts["admin"], "Administrator").refresh_token
    r = client.get("/api/v1/tools", headers={"Authorization": f"Bearer {refresh}"})
    assert r.status_code == 401

    r = client.get("/api/v1/tools", headers={"Authorization": "Basic abc"})
    assert r.status_code == 401


def test_operator_can_read_but_not_mutate(client, admin_h, operator_h):
    tool = _create_tool(client, admin_h, total=2)
    ticket = _new_ticket(client, operator_h)

    r = client.post("/api/v1/tools", json={"name": "X", "responsible": "Y", "quantity_total": 1}, headers=operator_h)
    assert r.status_code == 403
    assert r.json()["code"] == "forbidden"

    r = client.post("/api/v1/loans", json=_loan_body(tool["id"], ticket), headers=operator_h)
    assert r.status_code == 403
    assert _tool_counts(client, operator_h, tool["id"]) == (2, 2, 0)

    r = client.delete(f"/api/v1/tools/{tool['id']}", headers=operator_h)
    assert r.status_code == 403

    assert client.get("/api/v1/loans", headers=operator_h).status_code == 200
    assert client.get("/api/v1/tools", headers=operator_h).status_code == 200


def test_checkout_and_return_flow(client, admin_h, accounts):
    tool = _create_tool(client, admin_h, total=10)
    assert (tool["quantity_total"], tool["quantity_available"], tool["quantity_on_loan"]) == (10, 10, 0)

    ticket = _new_ticket(client, admin_h)
    assert ticket == f"{ticket_day_prefix(utc_today())}0001"

    r = client.post("/api/v1/loans", json=_loan_body(tool["id"], ticket, quantity=4), headers=admin_h)
    assert r.status_code == 201, r.text
    loan = r.json()
    assert loan["status"] == "Active"
    assert loan["tool_name"] == "Rotary hammer"
    assert loan["issued_by_name"] == "Alba Admin"
    assert loan["issued_by_id"] == accounts["admin"]
    assert _tool_counts(client, admin_h, tool["id"]) == (10, 6, 4)

    assert _new_ticket(client, admin_h) == f"{ticket_day_prefix(utc_today())}0002"

    r = client.put(f"/api/v1/loans/{loan['id']}/return", json={"notes": "returned clean"}, headers=admin_h)
    assert r.status_code == 200, r.text
    returned = r.json()
    assert returned["status"] == "Returned"
    assert returned["return_notes"] == "returned clean"
    assert returned["returned_by_name"] == "Alba Admin"
    assert _tool_counts(client, admin_h, tool["id"]) == (10, 10, 0)

    r = client.put(f"/api/v1/loans/{loan['id']}/return", headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "already_returned"
    assert _tool_counts(client, admin_h, tool["id"]) == (10, 10, 0)

    r = client.get(f"/api/v1/loans/{loan['id']}", headers=admin_h)
    assert r.status_code == 200
    assert r.json()["ticket_number"] == ticket


def test_business_rule_failures(client, admin_h):
    tool = _create_tool(client, admin_h, total=1)
    ticket = _new_ticket(client, admin_h)

    r = client.post("/api/v1/loans", json=_loan_body(tool["id"], ticket, quantity=2), headers=admin_h)
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "insufficient_stock"
    assert body["details"] == {"available": 1, "requested": 2}

    r = client.post("/api/v1/loans", json=_loan_body(999, ticket), headers=admin_h)
    assert r.status_code == 404
    assert r.json()["code"] == "tool_not_found"

    r = client.post("/api/v1/loans", json=_loan_body(tool["id"], "TICKET-1-1"), headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"

    r = client.post("/api/v1/loans", json={"tool_id": tool["id"]}, headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"

    assert client.post("/api/v1/loans", json=_loan_body(tool["id"], ticket), headers=admin_h).status_code == 201
    r = client.post("/api/v1/loans", json=_loan_body(tool["id"], ticket), headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "duplicate_ticket"

    r = client.delete(f"/api/v1/tools/{tool['id']}", headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "has_outstanding_loans"

    assert _tool_counts(client, admin_h, tool["id"]) == (1, 0, 1)

    r = client.get("/api/v1/loans/12345", headers=admin_h)
    assert r.status_code == 404
    assert r.json()["code"] == "loan_not_found"


def test_list_loans_status_filter(client, admin_h):
    tool = _create_tool(client, admin_h, total=5)
    first = client.post(
        "/api/v1/loans", json=_loan_body(tool["id"], _new_ticket(client, admin_h)), headers=admin_h
    ).json()
    client.post("/api/v1/loans", json=_loan_body(tool["id"], _new_ticket(client, admin_h)), headers=admin_h)
    client.put(f"/api/v1/loans/{first['id']}/return", headers=admin_h)

    r = client.get("/api/v1/loans", params={"estado": "Returned"}, headers=admin_h)
    assert r.status_code == 200
    body = r.json()
    assert [loan["id"] for loan in body["loans"]] == [first["id"]]
    assert body["pagination"]["total"] == 1

    r = client.get("/api/v1/loans", params={"estado": "active", "search": "rotary"}, headers=admin_h)
    assert r.json()["pagination"]["total"] == 1

    r = client.get("/api/v1/loans", params={"estado": "Lost"}, headers=admin_h)
    assert r.status_code == 400


def test_login_and_refresh(client, accounts):
    r = client.post("/api/v1/auth/login", json={"document_number": "9001", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["code"] == "invalid_credentials"

    r = client.post("/api/v1/auth/login", json={"document_number": "9001", "password": "admin-pw"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user"]["role"] == "Administrator"
    assert "password_hash" not in body["user"]

    headers = {"Authorization": f"Bearer {body['access_token']}"}
    assert client.get("/api/v1/tools", headers=headers).status_code == 200

    r = client.post("/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert r.status_code == 200
    assert r.json()["access_token"]

    r = client.post("/api/v1/auth/refresh", json={"refresh_token": body["access_token"]})
    assert r.status_code == 401


def test_user_management(client, admin_h, operator_h, accounts):
    new_user = {
        "document_number": "9003",
        "full_name": "Nora New",
        "email": "nora@example.com",
        "role": "Operator",
        "password": "nora-pw",
    }
    assert client.post("/api/v1/users/register", json=new_user, headers=operator_h).status_code == 403

    r = client.post("/api/v1/users/register", json=new_user, headers=admin_h)
    assert r.status_code == 201, r.text
    nora_id = r.json()["id"]

    r = client.post("/api/v1/users/register", json=new_user, headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "duplicate_user"

    operator_id = accounts["operator"]
    r = client.put(f"/api/v1/users/{operator_id}", json={"full_name": "Oscar O."}, headers=operator_h)
    assert r.status_code == 200
    assert r.json()["full_name"] == "Oscar O."

    r = client.put(f"/api/v1/users/{operator_id}", json={"role": "Administrator"}, headers=operator_h)
    assert r.status_code == 403

    r = client.put(f"/api/v1/users/{nora_id}", json={"full_name": "Hijack"}, headers=operator_h)
    assert r.status_code == 403

    assert client.delete(f"/api/v1/users/{nora_id}", headers=admin_h).status_code == 200
    assert client.get(f"/api/v1/users/{nora_id}", headers=admin_h).status_code == 404


def test_report_summary(client, admin_h):
    tool = _create_tool(client, admin_h, total=4)
    _create_tool(client, admin_h, total=6, name="Scaffold")
    client.post("/api/v1/loans", json=_loan_body(tool["id"], _new_ticket(client, admin_h), quantity=3), headers=admin_h)

    r = client.get("/api/v1/reports/summary", headers=admin_h)
    assert r.status_code == 200
    body = r.json()
    assert body["tools"] == 2
    assert body["units_total"] == 10
    assert body["units_available"] == 7
    assert body["units_on_loan"] == 3
    assert body["loans_active"] == 1
    assert body["loans_returned"] == 0
    assert body["loans_today"] == 1
    assert body["top_tools"][0]["tool_id"] == tool["id"]


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_token_of_deleted_user_is_rejected(client, admin_h):
    r = client.post(
        "/api/v1/users/register",
        json={
            "document_number": "9004",
            "full_name": "Gone Admin",
            "email": "gone@example.com",
            "role": "Administrator",
            "password": "gone-pw",
        },
        headers=admin_h,
    )
    assert r.status_code == 201
    gone_id = r.json()["id"]
    gone_h = _h(gone_id, "Administrator")
    assert client.get("/api/v1/tools", headers=gone_h).status_code == 200

    assert client.delete(f"/api/v1/users/{gone_id}", headers=admin_h).status_code == 200

    tool = _create_tool(client, admin_h, total=2)
    r = client.post("/api/v1/loans", json=_loan_body(tool["id"], _new_ticket(client, admin_h)), headers=gone_h)
    assert r.status_code == 401
    assert _tool_counts(client, admin_h, tool["id"]) == (2, 2, 0)


def test_role_comes_from_the_account_not_the_token(client, accounts):
    # A token minted with an elevated role does not elevate an operator.
    forged_h = _h(accounts["operator"], "Administrator")
    r = client.post("/api/v1/tools", json={"name": "X", "responsible": "Y", "quantity_total": 1}, headers=forged_h)
    assert r.status_code == 403


def test_product_withdrawal_flow(client, admin_h, operator_h, accounts):
    product = {"name": "Cutting disc", "code": "CD-115", "responsible": "Warehouse", "quantity": 10}
    assert client.post("/api/v1/products", json=product, headers=operator_h).status_code == 403

    r = client.post("/api/v1/products", json=product, headers=admin_h)
    assert r.status_code == 201, r.text
    product_id = r.json()["id"]

    r = client.post("/api/v1/products", json=product, headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "duplicate_code"

    withdrawal = {"product_id": product_id, "quantity": 4, "responsible": "Maria Gomez", "reason": "Facade repair"}
    r = client.post("/api/v1/reports/withdrawals", json=withdrawal, headers=operator_h)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["product_name"] == "Cutting disc"
    assert body["product_quantity"] == 6
    assert body["recorded_by_id"] == accounts["operator"]
    assert body["recorded_by_name"] == "Oscar Operator"

    r = client.post("/api/v1/reports/withdrawals", json={**withdrawal, "quantity": 7}, headers=operator_h)
    assert r.status_code == 400
    assert r.json()["code"] == "insufficient_stock"
    assert client.get(f"/api/v1/products/{product_id}", headers=operator_h).json()["quantity"] == 6

    r = client.post("/api/v1/reports/withdrawals", json={**withdrawal, "product_id": 999}, headers=operator_h)
    assert r.status_code == 404
    assert r.json()["code"] == "product_not_found"

    r = client.get(f"/api/v1/reports/withdrawals/product/{product_id}", headers=operator_h)
    assert [w["id"] for w in r.json()] == [body["id"]]
    assert client.get("/api/v1/reports/withdrawals/product/999", headers=operator_h).status_code == 404
    assert client.get(f"/api/v1/reports/withdrawals/{body['id']}", headers=operator_h).json()["reason"] == "Facade repair"
    assert client.get("/api/v1/reports/withdrawals/999", headers=operator_h).json()["code"] == "withdrawal_not_found"
    assert len(client.get("/api/v1/reports/withdrawals", headers=operator_h).json()) == 1

    stats = client.get("/api/v1/reports/statistics", headers=operator_h).json()
    assert stats == [
        {"product_id": product_id, "name": "Cutting disc", "quantity": 6, "withdrawal_count": 1, "units_withdrawn": 4}
    ]

    r = client.delete(f"/api/v1/products/{product_id}", headers=admin_h)
    assert r.status_code == 400
    assert r.json()["code"] == "referenced_record"
