"""
Pytest fixtures for tradebook backend tests.

Provides the application on an in-memory database, a clean schema per
test, users with and without permissions, and sample items and parties.
"""

import pytest

from tradebook import create_app
from tradebook.extensions import db
from tradebook.models import Broker, Commissioner, Customer, User, UserPermission, Vendor
from tradebook.models.auth import ROLE_ADMIN, ROLE_WORKER
from tradebook.services import inventory_service
from tradebook.services.auth_service import hash_password
from tradebook.services.document_service import ensure_sequences


PASSWORD = "Password123!"

# bcrypt is deliberately slow; hash the shared test password once
_PASSWORD_HASH = None


def _password_hash() -> str:
    global _PASSWORD_HASH
    if _PASSWORD_HASH is None:
        _PASSWORD_HASH = hash_password(PASSWORD)
    return _PASSWORD_HASH


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        ensure_sequences()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(username: str, role: str = ROLE_WORKER, permissions=()) -> User:
    user = User(
        username=username,
        fullname=username.title(),
        role=role,
        password_hash=_password_hash(),
        is_active=True,
    )
    user.permissions = [UserPermission(capability=key) for key in permissions]
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def worker_user(db_session):
    """Worker with no permissions at all."""
    return make_user("worker")


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def worker_headers(client, worker_user):
    return auth_headers(get_auth_token(client, worker_user.username))


@pytest.fixture(scope='function')
def items(db_session, admin_user):
    """
    Two items:
    - 10001 Tomatoes: 10 qty / 100 net / 110 gross in the shop, nothing cold
    - 10002 Onions:   5 qty / 50 net / 55 gross in the shop, 20 / 200 / 220 cold
    """
    tomatoes = inventory_service.create_item(
        item_name="Tomatoes",
        item_id=10001,
        counters={"shop_quantity": 10, "shop_net_weight": 100, "shop_gross_weight": 110},
        user=admin_user,
    )
    onions = inventory_service.create_item(
        item_name="Onions",
        item_id=10002,
        counters={
            "shop_quantity": 5, "shop_net_weight": 50, "shop_gross_weight": 55,
            "cold_quantity": 20, "cold_net_weight": 200, "cold_gross_weight": 220,
        },
        user=admin_user,
    )
    return {"tomatoes": tomatoes, "onions": onions}


@pytest.fixture(scope='function')
def parties(db_session):
    vendor = Vendor(name="Green Farms", city="Multan")
    customer = Customer(name="City Grocers", city="Lahore")
    commissioner = Commissioner(name="Rashid & Sons")
    broker = Broker(name="Karim")
    db.session.add_all([vendor, customer, commissioner, broker])
    db.session.commit()
    return {"vendor": vendor, "customer": customer, "commissioner": commissioner, "broker": broker}
