"""
Pytest fixtures for the breakroom supply backend.

Each test gets its own file-backed SQLite database so that threaded tests
exercise real cross-connection locking.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import init_db, make_engine, make_session_factory
from main import create_app
from models.product import Product
from models.users import User, UserRole
from utils.audit import AuditContext
from utils.tokenJWT import create_access_token


class ListRecorder:
    """Collects audit entries in memory."""

    def __init__(self):
        self.entries = []

    def record(self, entry):
        self.entries.append(entry)

    def actions(self):
        return [e.action for e in self.entries]


@pytest.fixture(scope='function')
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        API_URL="http://testserver",
        SECRET_KEY="test-secret",
        SCAN_HISTORY_DISPLAY_LIMIT=5,
    )


@pytest.fixture(scope='function')
def engine(settings):
    engine = make_engine(settings.database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope='function')
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture(scope='function')
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope='function')
def recorder():
    return ListRecorder()


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = User(email="admin@breakroom.test", name="Admin", role=UserRole.ADMIN)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    user = User(email="pat@breakroom.test", name="Pat", role=UserRole.CUSTOMER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_customer(db_session):
    user = User(email="sam@breakroom.test", name="Sam", role=UserRole.CUSTOMER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_ctx(admin_user):
    return AuditContext(user_id=admin_user.id, email=admin_user.email, role="admin")


@pytest.fixture(scope='function')
def customer_ctx(customer):
    return AuditContext(user_id=customer.id, email=customer.email, role="customer")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for catalog products."""
    def _make(name="Coffee Beans", price="12.50", stock=10, **kwargs):
        product = Product(name=name, price=Decimal(price), stock=stock, **kwargs)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def app(settings, session_factory, recorder):
    app = create_app(settings=settings, session_factory=session_factory)
    app.state.audit_recorder = recorder
    return app


@pytest.fixture(scope='function')
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def _auth_headers(settings, user):
    token = create_access_token(settings, {"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_headers(settings, admin_user):
    return _auth_headers(settings, admin_user)


@pytest.fixture(scope='function')
def customer_headers(settings, customer):
    return _auth_headers(settings, customer)


@pytest.fixture(scope='function')
def other_headers(settings, other_customer):
    return _auth_headers(settings, other_customer)
