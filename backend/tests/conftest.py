"""
Pytest fixtures for SubShop backend tests.

Provides the test app, a wiped database per test, account/product factories
and bearer-token headers for the API client.
"""

import io
import itertools

import pytest
from werkzeug.datastructures import FileStorage

from subshop import create_app
from subshop.config import TestConfig
from subshop.extensions import db
from subshop.models import User
from subshop.models.catalog import DELIVERY_MANUAL_ACTIVATION
from subshop.services import order_service, product_service, session_service
from subshop.services.auth_service import hash_password


TEST_PASSWORD = "Password123"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(scope='session')
def upload_root(tmp_path_factory):
    return tmp_path_factory.mktemp("uploads")


@pytest.fixture(scope='session')
def app(upload_root):
    """Create application for testing."""
    class _Config(TestConfig):
        UPLOAD_ROOT = str(upload_root)

    app = create_app(_Config)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()
    db.session.expunge_all()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash once for every factory-made user."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    counter = itertools.count(1)

    def _make(email=None, is_admin=False, full_name=None, is_active=True):
        user = User(
            email=email or f"user{next(counter)}@example.com",
            full_name=full_name,
            password_hash=password_hash,
            is_admin=is_admin,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user(email="customer@example.com", full_name="Asha Customer")


@pytest.fixture(scope='function')
def other_customer(make_user):
    return make_user(email="other@example.com", full_name="Ravi Other")


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user(email="admin@example.com", is_admin=True, full_name="Store Admin")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Create products; defaults to a Rs.599 manually activated subscription."""
    def _make(**overrides):
        data = {
            "name": "Netflix Premium 1 Month",
            "category": "streaming",
            "original_price_paise": 64900,
            "sale_price_paise": 59900,
            "delivery_type": DELIVERY_MANUAL_ACTIVATION,
        }
        data.update(overrides)
        return product_service.create_product(data)

    return _make


@pytest.fixture(scope='function')
def auth_headers(db_session):
    def _headers(user):
        _, token = session_service.create_session(user.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


def png_upload(filename="proof.png", content_type="image/png", data=PNG_BYTES):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


@pytest.fixture(scope='function')
def submitted_order(db_session):
    """Create an order and attach payment proof so it is ready for review."""
    def _submit(user, product, **kwargs):
        order = order_service.create_order(user.id, product.id, **kwargs)
        return order_service.upload_payment_screenshot(order.id, user.id, png_upload())

    return _submit
