"""
Pytest fixtures for stockledger backend tests.

Provides test database setup, two-tenant fixtures, and test client.
"""

from datetime import datetime

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Branch, Company, Product, Sale, SaleLine, SaleReturn, User
from stockledger.services.attachment_service import BLOB_STORE_EXTENSION_KEY
from stockledger.services.intake_service import create_receipt
from stockledger.services.scope_service import Scope


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ATTACHMENT_STORAGE_URL': None,
        'ATTACHMENT_RESOLVE_TIMEOUT_SECONDS': 1,
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


@pytest.fixture
def blob_store(app):
    """Swap the app's blob store for the duration of a test."""
    original = app.extensions[BLOB_STORE_EXTENSION_KEY]

    def _install(store):
        app.extensions[BLOB_STORE_EXTENSION_KEY] = store
        return store

    yield _install
    app.extensions[BLOB_STORE_EXTENSION_KEY] = original


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Acme Traders", code="ACME", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Beta Wholesale", code="BETA", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def branch_a1(db_session, company_a):
    branch = Branch(company_id=company_a.id, name="Acme Central")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, company_a):
    branch = Branch(company_id=company_a.id, name="Acme Harbour")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b1(db_session, company_b):
    branch = Branch(company_id=company_b.id, name="Beta Main")
    db_session.add(branch)
    db_session.commit()
    return branch


def make_user(db_session, company, branch, username, role):
    user = User(
        company_id=company.id,
        branch_id=branch.id if branch else None,
        username=username,
        full_name=username.replace("_", " ").title(),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_a(db_session, company_a):
    """Tenant-wide admin of Company A."""
    return make_user(db_session, company_a, None, "admin_a", "admin")


@pytest.fixture(scope='function')
def manager_a1(db_session, company_a, branch_a1):
    """Branch manager (approver) bound to A1."""
    return make_user(db_session, company_a, branch_a1, "manager_a1", "manager")


@pytest.fixture(scope='function')
def clerk_a1(db_session, company_a, branch_a1):
    """Warehouse clerk bound to A1; records receipts, cannot approve."""
    return make_user(db_session, company_a, branch_a1, "clerk_a1", "warehouse")


@pytest.fixture(scope='function')
def admin_b(db_session, company_b):
    return make_user(db_session, company_b, None, "admin_b", "admin")


def make_product(db_session, branch, sku, name, stock=0, reorder_level=10):
    product = Product(
        company_id=branch.company_id,
        branch_id=branch.id,
        sku=sku,
        name=name,
        quantity_in_stock=stock,
        reorder_level=reorder_level,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a1(db_session, branch_a1):
    return make_product(db_session, branch_a1, "RICE-25", "Rice 25kg", stock=100)


@pytest.fixture(scope='function')
def product_a1_oil(db_session, branch_a1):
    return make_product(db_session, branch_a1, "OIL-5L", "Cooking Oil 5L", stock=40)


@pytest.fixture(scope='function')
def product_b1(db_session, branch_b1):
    return make_product(db_session, branch_b1, "RICE-25", "Rice 25kg (Beta)", stock=70)


def scope_of(user) -> Scope:
    return Scope(user.company_id, user.branch_id if user.role != "admin" else None)


def make_receipt(user, branch, lines, reference="KDA 123X", attachments=None):
    """Record a PENDING receipt through the intake boundary."""
    return create_receipt(
        scope=scope_of(user),
        branch_id=branch.id,
        reference=reference,
        lines=[{"product_id": p.id, "quantity": q} for p, q in lines],
        created_by_user_id=user.id,
        attachments=attachments,
    )


def record_sale(db_session, branch, product, quantity, at: datetime, status="COMPLETED", number=None):
    """Write a sale the way checkout would (stock decremented with it)."""
    sale = Sale(
        company_id=branch.company_id,
        branch_id=branch.id,
        receipt_number=number or f"S-{product.id}-{at:%Y%m%d%H%M%S%f}-{quantity}",
        status=status,
        created_at=at,
    )
    db_session.add(sale)
    db_session.flush()
    line = SaleLine(sale_id=sale.id, product_id=product.id, quantity=quantity)
    db_session.add(line)
    db_session.commit()
    return sale, line


def record_return(db_session, sale, line, quantity, approved_at: datetime | None, status="APPROVED"):
    ret = SaleReturn(
        company_id=sale.company_id,
        branch_id=sale.branch_id,
        sale_id=sale.id,
        sale_line_id=line.id,
        product_id=line.product_id,
        quantity=quantity,
        status=status,
        approved_at=approved_at,
    )
    db_session.add(ret)
    db_session.commit()
    return ret


def actor_headers(user) -> dict:
    return {"X-Actor-Id": str(user.id)}
