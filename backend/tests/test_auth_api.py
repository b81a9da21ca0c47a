"""
Authentication and authorization tests for the HTTP API.

SECURITY: every admin route must answer 401 without a token and 403 for a
customer token.
"""

import pytest

from conftest import TEST_PASSWORD
from subshop.services import referral_service


ADMIN_ENDPOINTS = [
    ("get", "/api/admin/orders"),
    ("get", "/api/admin/orders/stats"),
    ("post", "/api/admin/orders/1/approve"),
    ("get", "/api/admin/products"),
    ("get", "/api/admin/stock/low"),
    ("get", "/api/admin/users"),
    ("put", "/api/flash-sale"),
    ("get", "/api/premium/memberships"),
    ("get", "/api/tickets/all"),
    ("put", "/api/settings"),
]


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


def test_register_login_me_logout(client, db_session):
    response = client.post("/api/auth/register", json={
        "email": "New.User@Example.com",
        "password": "Secret123",
        "full_name": "New User",
    })
    assert response.status_code == 201
    body = response.get_json()
    assert body["user"]["email"] == "new.user@example.com"
    assert body["referral"] is None

    response = client.post("/api/auth/login", json={"email": "new.user@example.com", "password": "Secret123"})
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.get_json()['token']}"}

    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.get_json()["user"]["is_premium"] is False

    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_register_rejects_weak_password_and_duplicate_email(client, db_session, customer):
    weak = client.post("/api/auth/register", json={"email": "weak@example.com", "password": "short"})
    assert weak.status_code == 400
    assert weak.get_json()["code"] == "validation"

    dup = client.post("/api/auth/register", json={"email": customer.email, "password": "Secret123"})
    assert dup.status_code == 409


def test_register_with_referral_code(client, db_session, customer):
    code = referral_service.get_or_create_code(customer.id).code

    response = client.post("/api/auth/register", json={
        "email": "friend@example.com",
        "password": "Secret123",
        "referral_code": code,
    })

    assert response.status_code == 201
    assert response.get_json()["referral"]["referrer_id"] == customer.id


def test_register_with_bad_referral_code_still_signs_up(client, db_session):
    response = client.post("/api/auth/register", json={
        "email": "friend@example.com",
        "password": "Secret123",
        "referral_code": "REFWRONG1",
    })

    assert response.status_code == 201
    assert response.get_json()["referral"] is None


def test_login_with_wrong_password(client, db_session, customer):
    response = client.post("/api/auth/login", json={"email": customer.email, "password": "Wrong12345"})

    assert response.status_code == 401


def test_login_with_factory_password(client, db_session, customer):
    response = client.post("/api/auth/login", json={"email": customer.email, "password": TEST_PASSWORD})

    assert response.status_code == 200


@pytest.mark.parametrize("method, url", ADMIN_ENDPOINTS)
def test_admin_routes_require_token(client, db_session, method, url):
    response = getattr(client, method)(url, json={})

    assert response.status_code == 401


@pytest.mark.parametrize("method, url", ADMIN_ENDPOINTS)
def test_admin_routes_reject_customers(client, db_session, customer, auth_headers, method, url):
    response = getattr(client, method)(url, json={}, headers=auth_headers(customer))

    assert response.status_code == 403
    assert response.get_json()["code"] == "forbidden"


def test_deactivated_user_loses_session(client, db_session, admin, customer, auth_headers):
    customer_headers = auth_headers(customer)
    assert client.get("/api/auth/me", headers=customer_headers).status_code == 200

    response = client.patch(f"/api/admin/users/{customer.id}", json={"is_active": False}, headers=auth_headers(admin))
    assert response.status_code == 200

    assert client.get("/api/auth/me", headers=customer_headers).status_code == 401
    login = client.post("/api/auth/login", json={"email": customer.email, "password": TEST_PASSWORD})
    assert login.status_code == 401


def test_admin_cannot_demote_self(client, db_session, admin, auth_headers):
    response = client.patch(f"/api/admin/users/{admin.id}", json={"is_admin": False}, headers=auth_headers(admin))

    assert response.status_code == 400
