"""
Pytest fixtures for bazaar backend tests.

Provides an in-memory database, account/manufacturer/product factories and
bearer-token helpers.
"""

from decimal import Decimal

import pytest

from bazaar import create_app
from bazaar.extensions import db
from bazaar.models import Manufacturer, ManufacturerStatus, Product, Role
from bazaar.services import auth_service, session_service


TEST_PASSWORD = "Password123"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'ORDER_TAX_RATE': Decimal("0"),
    'ORDER_TAX_POLICY': None,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(dict(TEST_CONFIG))

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

        app.config['ORDER_TAX_RATE'] = Decimal("0")
        app.config['ORDER_TAX_POLICY'] = None

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(username: str, role: str = Role.RETAILER, **kwargs):
    return auth_service.create_user(
        username=username,
        email=kwargs.pop("email", f"{username}@example.com"),
        password=kwargs.pop("password", TEST_PASSWORD),
        role=role,
        **kwargs,
    )


def make_manufacturer(db_session, company: str, *, verified: bool = True):
    """Manufacturer profile with an active MANUFACTURER login."""
    slug = company.lower().replace(" ", "")
    user = make_user(slug, role=Role.MANUFACTURER, email=f"{slug}@factory.example")
    manufacturer = Manufacturer(
        company_name=company,
        contact_person="Asha Rao",
        email=f"{slug}@factory.example",
        user_id=user.id,
        status=ManufacturerStatus.APPROVED if verified else ManufacturerStatus.PENDING,
        is_verified=verified,
    )
    db_session.add(manufacturer)
    db_session.commit()
    return manufacturer


def make_product(db_session, manufacturer, name: str, price: str, stock: int, **kwargs):
    product = Product(
        manufacturer_id=manufacturer.id,
        name=name,
        price=Decimal(price),
        stock_quantity=stock,
        **kwargs,
    )
    db_session.add(product)
    db_session.commit()
    return product


def auth_headers(user) -> dict:
    """Authorization headers for a fresh session of user."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user("admin", role=Role.ADMIN)


@pytest.fixture(scope='function')
def retailer(db_session):
    return make_user("retailer")


@pytest.fixture(scope='function')
def other_retailer(db_session):
    return make_user("other")


@pytest.fixture(scope='function')
def manufacturer(db_session):
    return make_manufacturer(db_session, "Sivakasi Sparklers")


@pytest.fixture(scope='function')
def sparkler(db_session, manufacturer):
    """Price 10.00, stock 10."""
    return make_product(db_session, manufacturer, "Gold Sparkler", "10.00", 10, sku="SPK-001")


@pytest.fixture(scope='function')
def rocket(db_session, manufacturer):
    """Price 25.50, stock 5."""
    return make_product(db_session, manufacturer, "Sky Rocket", "25.50", 5, sku="RKT-001")


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def retailer_headers(retailer):
    return auth_headers(retailer)


@pytest.fixture(scope='function')
def manufacturer_headers(manufacturer):
    return auth_headers(manufacturer.user)
