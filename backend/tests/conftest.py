"""
Pytest fixtures for Antique Haven backend tests.

Provides test database setup, one user per role, stock fixtures, and a
test client with login helpers.
"""

import pytest
from haven import create_app
from haven.extensions import db
from haven.models import User, InventoryItem
from haven.services import auth_service
from haven.services.auth_service import hash_password


PASSWORD = "Password123!"

# Cost 4 keeps hashing fast; verification works the same at any cost
auth_service.BCRYPT_ROUNDS = 4


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOW_STOCK_THRESHOLD': 5,
        'LOW_MARGIN_PERCENT': 10,
        'SALE_COMMIT_ATTEMPTS': 3,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username: str, role: str) -> User:
    user = User(
        username=username,
        full_name=f"{username.title()} Tester",
        email=f"{username}@haven.test",
        password_hash=hash_password(PASSWORD),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", "ADMIN")


@pytest.fixture(scope='function')
def owner_user(db_session):
    return _make_user(db_session, "owner", "OWNER")


@pytest.fixture(scope='function')
def attendant_user(db_session):
    return _make_user(db_session, "attendant", "ATTENDANT")


@pytest.fixture(scope='function')
def item(db_session, admin_user):
    """A clock bought at 40.00, listed at 100.00, five in stock."""
    item = InventoryItem(
        name="Mantel Clock",
        category="Clocks",
        description="Oak case, 1890s",
        buying_price_cents=4000,
        selling_price_cents=10000,
        quantity=5,
        modified_by_user_id=admin_user.id,
    )
    db_session.add(item)
    db_session.commit()
    return item


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
def owner_headers(client, owner_user):
    return auth_headers(get_auth_token(client, owner_user.username))


@pytest.fixture(scope='function')
def attendant_headers(client, attendant_user):
    return auth_headers(get_auth_token(client, attendant_user.username))
