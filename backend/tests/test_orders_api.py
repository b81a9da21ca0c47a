import io

import pytest

from conftest import PNG_BYTES
from subshop.models.catalog import DELIVERY_INSTANT_KEY
from subshop.services import coupon_service, loyalty_service


def _upload(client, order_id, headers, data=PNG_BYTES, filename="proof.png", content_type="image/png", **form):
    return client.post(
        f"/api/orders/{order_id}/payment",
        data={"file": (io.BytesIO(data), filename, content_type), **form},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_checkout_upload_approve_flow(client, db_session, admin, customer, make_product, auth_headers):
    product = make_product(delivery_type=DELIVERY_INSTANT_KEY, sale_price_paise=99900)
    customer_headers = auth_headers(customer)
    admin_headers = auth_headers(admin)

    keys = client.post(
        f"/api/admin/products/{product.id}/keys",
        json={"keys": ["NFX-0001", "NFX-0002"]},
        headers=admin_headers,
    )
    assert keys.status_code == 201
    assert keys.get_json()["created"] == 2

    created = client.post("/api/orders", json={"product_id": product.id}, headers=customer_headers)
    assert created.status_code == 201
    order = created.get_json()["order"]
    assert order["status"] == "PENDING"
    assert order["total_amount_paise"] == 99900

    uploaded = _upload(client, order["id"], customer_headers, user_input="viewer@mail.com")
    assert uploaded.status_code == 200
    assert uploaded.get_json()["order"]["status"] == "SUBMITTED"

    approved = client.post(f"/api/admin/orders/{order['id']}/approve", json={}, headers=admin_headers)
    assert approved.status_code == 200
    body = approved.get_json()["order"]
    assert body["status"] == "COMPLETED"
    assert body["credentials"] == {"licenseKey": "NFX-0001"}

    mine = client.get(f"/api/orders/{order['id']}", headers=customer_headers)
    assert mine.get_json()["order"]["credentials"] == {"licenseKey": "NFX-0001"}
    assert "events" not in mine.get_json()

    as_admin = client.get(f"/api/orders/{order['id']}", headers=admin_headers)
    assert [e["event_type"] for e in as_admin.get_json()["events"]] == [
        "order.created", "order.submitted", "stock.key_assigned", "order.approved", "loyalty.earned",
    ]

    loyalty = client.get("/api/loyalty", headers=customer_headers)
    assert loyalty.get_json()["account"]["total_points"] == 99


def test_uploaded_proof_is_served(client, db_session, customer, make_product, auth_headers):
    headers = auth_headers(customer)
    order_id = client.post("/api/orders", json={"product_id": make_product().id}, headers=headers).get_json()["order"]["id"]

    url = _upload(client, order_id, headers).get_json()["order"]["payment_screenshot"]

    served = client.get(url)
    assert served.status_code == 200
    assert served.data == PNG_BYTES
    served.close()


def test_upload_rejects_wrong_type(client, db_session, customer, make_product, auth_headers):
    headers = auth_headers(customer)
    order_id = client.post("/api/orders", json={"product_id": make_product().id}, headers=headers).get_json()["order"]["id"]

    response = _upload(client, order_id, headers, data=b"hello", filename="proof.txt", content_type="text/plain")

    assert response.status_code == 400
    assert response.get_json()["code"] == "validation"


def test_upload_without_file(client, db_session, customer, make_product, auth_headers):
    headers = auth_headers(customer)
    order_id = client.post("/api/orders", json={"product_id": make_product().id}, headers=headers).get_json()["order"]["id"]

    response = client.post(f"/api/orders/{order_id}/payment", data={}, headers=headers,
                           content_type="multipart/form-data")

    assert response.status_code == 400


def test_customers_cannot_see_each_others_orders(client, db_session, customer, other_customer,
                                                make_product, auth_headers):
    order_id = client.post(
        "/api/orders", json={"product_id": make_product().id}, headers=auth_headers(customer)
    ).get_json()["order"]["id"]
    other_headers = auth_headers(other_customer)

    assert client.get(f"/api/orders/{order_id}", headers=other_headers).status_code == 404
    assert client.get("/api/orders", headers=other_headers).get_json()["items"] == []
    assert _upload(client, order_id, other_headers).status_code == 403


def test_approve_out_of_stock_returns_409(client, db_session, admin, customer, make_product, auth_headers):
    product = make_product(delivery_type=DELIVERY_INSTANT_KEY)
    headers = auth_headers(customer)
    order_id = client.post("/api/orders", json={"product_id": product.id}, headers=headers).get_json()["order"]["id"]
    _upload(client, order_id, headers)

    response = client.post(f"/api/admin/orders/{order_id}/approve", json={}, headers=auth_headers(admin))

    assert response.status_code == 409
    assert response.get_json()["code"] == "stock_exhausted"
    assert client.get(f"/api/orders/{order_id}", headers=headers).get_json()["order"]["status"] == "SUBMITTED"


def test_reject_requires_reason(client, db_session, admin, customer, make_product, auth_headers):
    order_id = client.post(
        "/api/orders", json={"product_id": make_product().id}, headers=auth_headers(customer)
    ).get_json()["order"]["id"]
    admin_headers = auth_headers(admin)

    assert client.post(f"/api/admin/orders/{order_id}/reject", json={}, headers=admin_headers).status_code == 400

    rejected = client.post(f"/api/admin/orders/{order_id}/reject", json={"reason": "No payment"}, headers=admin_headers)
    assert rejected.status_code == 200
    assert rejected.get_json()["order"]["status"] == "CANCELLED"


def test_catalog_hides_inactive_products(client, db_session, admin, make_product, auth_headers):
    live = make_product(name="Live")
    gone = make_product(name="Gone")
    client.delete(f"/api/admin/products/{gone.id}", headers=auth_headers(admin))

    items = client.get("/api/products").get_json()["items"]

    assert [p["id"] for p in items] == [live.id]
    assert client.get(f"/api/products/{gone.id}").status_code == 404


def test_flash_sale_etag_and_not_modified(client, db_session, admin, make_product, auth_headers):
    product = make_product(sale_price_paise=59900)

    first = client.get("/api/flash-sale")
    assert first.status_code == 200
    etag = first.headers["ETag"]
    assert etag == '"flash-sale-v1"'
    assert first.headers["Cache-Control"] == "no-cache"

    unchanged = client.get("/api/flash-sale", headers={"If-None-Match": etag})
    assert unchanged.status_code == 304

    saved = client.put("/api/flash-sale", json={
        "enabled": True,
        "products": [{"product_id": product.id, "discount_paise": 10000}],
    }, headers=auth_headers(admin))
    assert saved.status_code == 200

    changed = client.get("/api/flash-sale", headers={"If-None-Match": etag})
    assert changed.status_code == 200
    assert changed.headers["ETag"] == '"flash-sale-v2"'
    assert changed.get_json()["is_active"] is True

    catalog = client.get(f"/api/products/{product.id}").get_json()["product"]
    assert catalog["current_price_paise"] == 49900


def test_loyalty_redeem_with_too_few_points(client, db_session, customer, auth_headers):
    response = client.post("/api/loyalty/redeem", headers=auth_headers(customer))

    assert response.status_code == 409
    assert response.get_json()["code"] == "insufficient_points"


def test_premium_content_requires_membership(client, db_session, admin, customer, auth_headers):
    customer_headers = auth_headers(customer)
    admin_headers = auth_headers(admin)
    client.post("/api/premium/content", json={"title": "Family plan trick", "content_type": "trick"}, headers=admin_headers)

    assert client.get("/api/premium/content", headers=customer_headers).status_code == 403

    requested = client.post("/api/premium/request", json={"plan_type": "lifetime"}, headers=customer_headers)
    assert requested.status_code == 201
    membership_id = requested.get_json()["membership"]["id"]
    approved = client.post(f"/api/premium/memberships/{membership_id}/approve", headers=admin_headers)
    assert approved.status_code == 200

    content = client.get("/api/premium/content", headers=customer_headers)
    assert content.status_code == 200
    assert [c["title"] for c in content.get_json()["items"]] == ["Family plan trick"]


def test_upload_over_request_limit_returns_json_400(client, app, db_session, customer, make_product,
                                                    auth_headers, monkeypatch):
    monkeypatch.setitem(app.config, "MAX_UPLOAD_BYTES", 1024)
    monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 2048)
    headers = auth_headers(customer)
    order_id = client.post("/api/orders", json={"product_id": make_product().id}, headers=headers).get_json()["order"]["id"]

    response = _upload(client, order_id, headers, data=PNG_BYTES + b"\x00" * 4096)

    assert response.status_code == 400
    body = response.get_json()
    assert body["code"] == "validation"
    assert body["details"]["max_bytes"] == 1024
    assert client.get(f"/api/orders/{order_id}", headers=headers).get_json()["order"]["status"] == "PENDING"


def test_upload_over_file_limit_within_request_limit(client, app, db_session, customer, make_product,
                                                     auth_headers, monkeypatch):
    monkeypatch.setitem(app.config, "MAX_UPLOAD_BYTES", 1024)
    monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 64 * 1024)
    headers = auth_headers(customer)
    order_id = client.post("/api/orders", json={"product_id": make_product().id}, headers=headers).get_json()["order"]["id"]

    response = _upload(client, order_id, headers, data=PNG_BYTES + b"\x00" * 2048)

    assert response.status_code == 400
    assert response.get_json()["code"] == "validation"


def test_upload_accepts_phone_camera_format(client, db_session, customer, make_product, auth_headers):
    headers = auth_headers(customer)
    order_id = client.post("/api/orders", json={"product_id": make_product().id}, headers=headers).get_json()["order"]["id"]

    response = _upload(client, order_id, headers, filename="IMG_0042", content_type="image/heic")

    assert response.status_code == 200
    assert response.get_json()["order"]["payment_screenshot"].endswith(".heic")


@pytest.mark.parametrize("payload", [
    {"product_id": "abc"},
    {"product_id": True},
    {"product_id": 1, "variant_id": "first"},
    {},
])
def test_create_order_rejects_bad_ids(client, db_session, customer, auth_headers, payload):
    response = client.post("/api/orders", json=payload, headers=auth_headers(customer))

    assert response.status_code == 400
    assert response.get_json()["code"] == "validation"


def test_create_bundle_order_rejects_non_numeric_id(client, db_session, customer, auth_headers):
    response = client.post("/api/orders/bundle", json={"bundle_id": "trio"}, headers=auth_headers(customer))

    assert response.status_code == 400
    assert response.get_json()["code"] == "validation"


def test_checkout_with_coupon(client, db_session, customer, make_product, auth_headers):
    loyalty_service.award_points(customer.id, coupon_service.POINTS_PER_COUPON, loyalty_service.TX_BONUS, "Promo")
    headers = auth_headers(customer)
    code = client.post("/api/loyalty/redeem", headers=headers).get_json()["coupon"]["code"]
    product = make_product(sale_price_paise=59900)

    created = client.post("/api/orders", json={"product_id": product.id, "coupon_code": code}, headers=headers)
    assert created.status_code == 201
    assert created.get_json()["order"]["total_amount_paise"] == 49900

    reused = client.post("/api/orders", json={"product_id": product.id, "coupon_code": code}, headers=headers)
    assert reused.status_code == 400


def test_malformed_json_is_a_client_error(client, db_session, customer, auth_headers):
    response = client.post("/api/orders", data="{not json", content_type="application/json",
                           headers=auth_headers(customer))

    assert response.status_code == 400
    assert response.get_json()["code"] == "bad_request"


def test_unknown_route_answers_json_404(client, db_session):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.get_json()["code"] == "not_found"
