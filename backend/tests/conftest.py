"""
Pytest fixtures for maroc_billing backend tests.

Provides test database setup, two tenant companies with their master data,
a company-bound BillingEngine and the Flask test client.
"""

import pytest

from maroc_billing import create_app
from maroc_billing.config import TestingConfig
from maroc_billing.engine import BillingEngine
from maroc_billing.extensions import db
from maroc_billing.models import (
    Client, ClientCategory, Company, Product, ProductCategory, StockLocation, Tax,
)
from maroc_billing.services.stock_service import record_movement


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
        db.session.expunge_all()


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant) with its default stock location."""
    company = Company(name="Atlas SARL", code="ATLAS", ice="001234567000089", is_active=True)
    db_session.add(company)
    db_session.flush()
    db_session.add(StockLocation(company_id=company.id, name="Dépôt principal", is_default=True))
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Bahia Distribution", code="BAHIA", is_active=True)
    db_session.add(company)
    db_session.flush()
    db_session.add(StockLocation(company_id=company.id, name="Dépôt principal", is_default=True))
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def location_a(db_session, company_a):
    return db_session.query(StockLocation).filter_by(company_id=company_a.id, is_default=True).one()


@pytest.fixture(scope='function')
def second_location_a(db_session, company_a):
    location = StockLocation(company_id=company_a.id, name="Magasin Casablanca")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def default_tax_a(db_session, company_a):
    """Standard Moroccan VAT (20%) as Company A's default tax."""
    tax = Tax(company_id=company_a.id, name="TVA 20%", rate_bps=2000, is_default=True)
    db_session.add(tax)
    db_session.commit()
    return tax


@pytest.fixture(scope='function')
def client_a(db_session, company_a):
    """Create a client of Company A."""
    customer = Client(company_id=company_a.id, name="Hôtel Majorelle", email="achats@majorelle.ma")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def other_client_a(db_session, company_a):
    customer = Client(company_id=company_a.id, name="Riad Zitoun", email="contact@zitoun.ma")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def client_b(db_session, company_b):
    """Create a client of Company B."""
    customer = Client(company_id=company_b.id, name="Café Tanger")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def export_category_a(db_session, company_a):
    category = ClientCategory(company_id=company_a.id, name="Export")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def food_category_a(db_session, company_a):
    category = ProductCategory(company_id=company_a.id, name="Alimentaire")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product_a(db_session, company_a, location_a):
    """Stock-managed product in Company A with 10 units received through the ledger."""
    product = Product(
        company_id=company_a.id,
        location_id=location_a.id,
        name="Chaise en cèdre",
        reference="CH-001",
        price_cents=10000,
        vat_rate_bps=2000,
        manage_stock=True,
    )
    db_session.add(product)
    db_session.flush()
    record_movement(company_a.id, product.id, "purchase", 10, reason="Stock initial")
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product_a(db_session, company_a, location_a):
    """Stock-managed product in Company A with 3 units."""
    product = Product(
        company_id=company_a.id,
        location_id=location_a.id,
        name="Table basse",
        reference="TB-001",
        price_cents=45000,
        vat_rate_bps=2000,
        manage_stock=True,
    )
    db_session.add(product)
    db_session.flush()
    record_movement(company_a.id, product.id, "purchase", 3, reason="Stock initial")
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def unmanaged_product_a(db_session, company_a):
    """Physical product whose stock is not tracked."""
    product = Product(
        company_id=company_a.id,
        name="Coussin",
        reference="CO-001",
        price_cents=2500,
        vat_rate_bps=2000,
        manage_stock=False,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def service_a(db_session, company_a):
    """Service: never carries stock, even if manage_stock is set."""
    product = Product(
        company_id=company_a.id,
        name="Installation",
        reference="SRV-001",
        price_cents=50000,
        vat_rate_bps=2000,
        is_service=True,
        manage_stock=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, company_b):
    """Stock-managed product in Company B with 5 units."""
    product = Product(
        company_id=company_b.id,
        name="Lampe en laiton",
        reference="LA-001",
        price_cents=30000,
        manage_stock=True,
    )
    db_session.add(product)
    db_session.flush()
    record_movement(company_b.id, product.id, "purchase", 5, reason="Stock initial")
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def engine(company_a):
    """BillingEngine bound to Company A."""
    return BillingEngine(company_a.id)


@pytest.fixture(scope='function')
def sent_invoice(engine, client_a, product_a, default_tax_a):
    """Sent invoice for 2 chairs: 200.00 HT + 40.00 TVA = 240.00 MAD."""
    invoice = engine.create_invoice(
        client_id=client_a.id,
        items=[{"product_id": product_a.id, "quantity": 2}],
    ).unwrap()
    return engine.transition("invoice", invoice.id, "send").unwrap()


@pytest.fixture(scope='function')
def headers_a(company_a) -> dict:
    """Tenant header for Company A."""
    return {'X-Company-Id': str(company_a.id)}


@pytest.fixture(scope='function')
def headers_b(company_b) -> dict:
    return {'X-Company-Id': str(company_b.id)}
