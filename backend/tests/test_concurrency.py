"""
Concurrency tests against a file-backed SQLite database.

Each worker thread gets its own app context (and therefore its own session
and connection), so the conditional UPDATEs are what keeps the counters
correct.
"""

import threading

import pytest

from subshop import create_app
from subshop.config import TestConfig
from subshop.errors import InsufficientPointsError, StockExhaustedError
from subshop.extensions import db
from subshop.models import LoyaltyAccount, Order, Product, User
from subshop.models.orders import ORDER_COMPLETED, ORDER_SUBMITTED
from subshop.services import loyalty_service, order_service, product_service


@pytest.fixture
def file_app(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'concurrency.sqlite3'}"
        UPLOAD_ROOT = str(tmp_path / "uploads")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_threads(app, targets):
    barrier = threading.Barrier(len(targets))
    results = [None] * len(targets)

    def _worker(index, target):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = ("ok", target())
            except Exception as exc:
                results[index] = ("error", exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=_worker, args=(i, t)) for i, t in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


def _seed(password_hash, manual_stock):
    admin = User(email="admin@example.com", password_hash=password_hash, is_admin=True, is_active=True)
    buyers = [
        User(email=f"buyer{i}@example.com", password_hash=password_hash, is_admin=False, is_active=True)
        for i in range(2)
    ]
    db.session.add_all([admin, *buyers])
    db.session.commit()
    product = product_service.create_product({
        "name": "Prime Video",
        "sale_price_paise": 99900,
        "use_manual_stock": True,
        "manual_stock_count": manual_stock,
        "delivery_type": "MANUAL_ACTIVATION",
    })
    orders = [order_service.create_order(b.id, product.id) for b in buyers]
    for order in orders:
        order.status = ORDER_SUBMITTED
    db.session.commit()
    return admin.id, product.id, [o.id for o in orders]


def test_parallel_approvals_share_last_unit(file_app, password_hash):
    with file_app.app_context():
        admin_id, product_id, order_ids = _seed(password_hash, manual_stock=1)

    results = _run_threads(file_app, [
        lambda oid=oid: order_service.approve_order(oid, None, admin_id).id
        for oid in order_ids
    ])

    outcomes = sorted(kind for kind, _ in results)
    assert outcomes == ["error", "ok"]
    errors = [value for kind, value in results if kind == "error"]
    assert isinstance(errors[0], StockExhaustedError)

    with file_app.app_context():
        assert db.session.get(Product, product_id).manual_stock_count == 0
        statuses = sorted(db.session.get(Order, oid).status for oid in order_ids)
        assert statuses == [ORDER_COMPLETED, ORDER_SUBMITTED]


def test_parallel_approvals_of_same_order_apply_once(file_app, password_hash):
    with file_app.app_context():
        admin_id, product_id, order_ids = _seed(password_hash, manual_stock=5)
        buyer_id = db.session.get(Order, order_ids[0]).user_id

    results = _run_threads(file_app, [
        lambda: order_service.approve_order(order_ids[0], None, admin_id).status
        for _ in range(2)
    ])

    assert [value for _, value in results] == [ORDER_COMPLETED, ORDER_COMPLETED]
    with file_app.app_context():
        assert db.session.get(Product, product_id).manual_stock_count == 4
        account = db.session.query(LoyaltyAccount).filter_by(user_id=buyer_id).one()
        assert account.total_points == 99


def test_parallel_redemptions_never_overdraw(file_app, password_hash):
    with file_app.app_context():
        user = User(email="saver@example.com", password_hash=password_hash, is_admin=False, is_active=True)
        db.session.add(user)
        db.session.commit()
        user_id = user.id
        loyalty_service.award_points(user_id, 5000, loyalty_service.TX_BONUS, "Promo")

    results = _run_threads(file_app, [
        lambda: loyalty_service.redeem_points(user_id, 3000, "Spend").points
        for _ in range(3)
    ])

    successes = [value for kind, value in results if kind == "ok"]
    failures = [value for kind, value in results if kind == "error"]
    assert successes == [-3000]
    assert all(isinstance(exc, InsufficientPointsError) for exc in failures)
    with file_app.app_context():
        account = db.session.query(LoyaltyAccount).filter_by(user_id=user_id).one()
        assert account.total_points == 2000
        assert account.lifetime_points == 5000
