"""
Pytest fixtures for EduSales backend tests.

Provides test database setup, one user per workflow role, a deal with an
assigned employee, a stocked warehouse item and the test client.
"""

import pytest
from edusales import create_app
from edusales.extensions import db
from edusales.models import User, DcOrder, Sale, WarehouseItem, DeliveryChallan, DcProductLine
from edusales.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, name, email, role):
    # Workflow tests never log in; a bogus hash skips bcrypt's cost
    user = User(name=name, email=email, password_hash="x", role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def employee(db_session):
    return _make_user(db_session, "Ravi Employee", "ravi@edusales.test", "Employee")


@pytest.fixture
def other_employee(db_session):
    return _make_user(db_session, "Meena Employee", "meena@edusales.test", "Employee")


@pytest.fixture
def admin(db_session):
    return _make_user(db_session, "Anita Admin", "anita@edusales.test", "Admin")


@pytest.fixture
def manager(db_session):
    return _make_user(db_session, "Mohan Manager", "mohan@edusales.test", "Manager")


@pytest.fixture
def warehouse_user(db_session):
    return _make_user(db_session, "Wasim Warehouse", "wasim@edusales.test", "Warehouse")


@pytest.fixture
def super_admin(db_session):
    return _make_user(db_session, "Sunita Super", "sunita@edusales.test", "Super Admin")


@pytest.fixture
def deal(db_session, employee, admin):
    """Deal for 40 Abacus kits, assigned to `employee`."""
    order = DcOrder(
        school_name="Green Valley School",
        contact_person="Principal Rao",
        contact_mobile="9876543210",
        email="office@greenvalley.test",
        address="12 Lake Road",
        zone="South",
        products=[{"product_name": "Abacus", "quantity": 40, "unit_price": 500}],
        total_amount=20000,
        created_by_user_id=admin.id,
        assigned_to_user_id=employee.id,
    )
    db_session.add(order)
    db_session.commit()
    return order


@pytest.fixture
def sale(db_session, employee, admin):
    record = Sale(
        customer_name="Blue Bells School",
        customer_email="accounts@bluebells.test",
        customer_phone="9000000001",
        product="Vedic Maths",
        quantity=25,
        unit_price=300,
        total_amount=7500,
        assigned_to_user_id=employee.id,
        created_by_user_id=admin.id,
    )
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def abacus_item(db_session):
    item = WarehouseItem(product_name="Abacus", current_stock=100, min_stock=10, unit_price=500)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture
def make_dc(db_session, deal, employee, admin):
    """
    Build a DC directly in a given status with the given product lines.

    Lines are dicts of DcProductLine columns.
    """
    def _make(status="pending_dc", lines=None):
        dc = DeliveryChallan(
            dc_order_id=deal.id,
            employee_id=employee.id,
            created_by_user_id=admin.id,
            customer_name=deal.school_name,
            customer_phone=deal.contact_mobile,
            product="Abacus",
            requested_quantity=40,
            status=status,
        )
        for position, line in enumerate(lines or []):
            dc.product_lines.append(DcProductLine(position=position, **line))
        db_session.add(dc)
        db_session.commit()
        return dc

    return _make


@pytest.fixture
def auth_headers(db_session):
    """Return a function producing Authorization headers for a user."""
    def _headers(user):
        _, token = session_service.create_session(user.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
