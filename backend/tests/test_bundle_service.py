from datetime import timedelta

import pytest

from conftest import png_upload
from subshop.errors import NotFoundError, ValidationError
from subshop.models.orders import ORDER_COMPLETED
from subshop.services import bundle_service, order_service
from subshop.time_utils import utcnow


def _bundle_data(products, **overrides):
    data = {
        "name": "Streaming Trio",
        "original_price_paise": 150000,
        "sale_price_paise": 99900,
        "product_ids": [p.id for p in products],
    }
    data.update(overrides)
    return data


def test_create_bundle_with_products(db_session, make_product):
    products = [make_product(name="Netflix"), make_product(name="Spotify")]

    bundle = bundle_service.create_bundle(_bundle_data(products))

    assert {p.name for p in bundle.products} == {"Netflix", "Spotify"}
    assert bundle.to_dict()["sale_price_paise"] == 99900


def test_sale_price_cannot_exceed_original(db_session, make_product):
    with pytest.raises(ValidationError):
        bundle_service.create_bundle(_bundle_data([make_product()], sale_price_paise=200000))


def test_unknown_product_ids_are_reported(db_session, make_product):
    product = make_product()

    with pytest.raises(NotFoundError) as exc:
        bundle_service.create_bundle({**_bundle_data([product]), "product_ids": [product.id, 999999]})

    assert exc.value.details == {"product_ids": [999999]}


def test_update_replaces_product_set_only_when_given(db_session, make_product):
    netflix, spotify, prime = make_product(name="Netflix"), make_product(name="Spotify"), make_product(name="Prime")
    bundle = bundle_service.create_bundle(_bundle_data([netflix, spotify]))

    bundle_service.update_bundle(bundle.id, {"name": "Renamed"})
    assert len(bundle_service.get_bundle(bundle.id).products) == 2

    updated = bundle_service.update_bundle(bundle.id, {"product_ids": [prime.id]})
    assert [p.name for p in updated.products] == ["Prime"]
    assert updated.name == "Renamed"


def test_list_hides_inactive_and_expired_bundles(db_session, make_product):
    product = make_product()
    live = bundle_service.create_bundle(_bundle_data([product], name="Live"))
    bundle_service.create_bundle(_bundle_data([product], name="Off", is_active=False))
    bundle_service.create_bundle(_bundle_data(
        [product], name="Expired", valid_until=(utcnow() - timedelta(days=1)).isoformat()
    ))

    assert [b.id for b in bundle_service.list_bundles()] == [live.id]
    assert len(bundle_service.list_bundles(active_only=False)) == 3


def test_bundle_order_is_fulfilled_by_hand(db_session, admin, customer, make_product):
    bundle = bundle_service.create_bundle(_bundle_data([make_product()]))

    order = order_service.create_bundle_order(customer.id, bundle.id)
    assert order.total_amount_paise == 99900
    assert order.product_id is None
    order_service.upload_payment_screenshot(order.id, customer.id, png_upload())

    approved = order_service.approve_order(order.id, {"details": "sent on Telegram"}, admin.id)
    assert approved.status == ORDER_COMPLETED
    assert approved.credentials == {"details": "sent on Telegram"}


def test_expired_bundle_cannot_be_ordered(db_session, customer, make_product):
    bundle = bundle_service.create_bundle(_bundle_data([make_product()]))
    bundle_service.update_bundle(bundle.id, {"valid_until": (utcnow() - timedelta(hours=1)).isoformat()})

    with pytest.raises(ValidationError):
        order_service.create_bundle_order(customer.id, bundle.id)


def test_delete_bundle(db_session, make_product):
    bundle = bundle_service.create_bundle(_bundle_data([make_product()]))

    bundle_service.delete_bundle(bundle.id)

    with pytest.raises(NotFoundError):
        bundle_service.get_bundle(bundle.id)
