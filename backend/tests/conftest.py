"""
Pytest fixtures for bilkro backend tests.

Provides an in-memory database wiped per test, users with session tokens,
a product factory and the test client.
"""

import pytest

from bilkro import create_app
from bilkro.extensions import db, mailer
from bilkro.models import Product, User
from bilkro.services.auth_service import hash_password
from bilkro.services import session_service

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAIL_SUPPRESS_SEND': True,
        'WEBSITE_LINK': 'http://bilkro.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        mailer.outbox.clear()

        yield db.session

        db.session.rollback()


def _make_user(db_session, username: str, *, is_admin: bool = False) -> User:
    user = User(
        username=username,
        email=f"{username}@bilkro.test",
        password_hash=hash_password(TEST_PASSWORD),
        is_admin=is_admin,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user(db_session):
    """Regular customer account."""
    return _make_user(db_session, "customer")


@pytest.fixture(scope='function')
def other_user(db_session):
    return _make_user(db_session, "customer2")


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user(db_session, "admin", is_admin=True)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(sku="TIRE-1", selling_price_cents=5000, quantity=5, ...)."""
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        fields = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "category": "tires",
            "buying_price_cents": 3000,
            "selling_price_cents": 5000,
            "quantity": 5,
            "unit": "pcs",
            "reorder_level": 0,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


def token_for(user: User) -> str:
    _, token = session_service.create_session(user_id=user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def user_headers(user):
    return auth_headers(token_for(user))


@pytest.fixture(scope='function')
def other_user_headers(other_user):
    return auth_headers(token_for(other_user))


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(token_for(admin))


@pytest.fixture(scope='function')
def user_password():
    return TEST_PASSWORD


@pytest.fixture(scope='function')
def headers_for():
    """Factory: headers_for(token) -> Authorization headers."""
    return auth_headers
