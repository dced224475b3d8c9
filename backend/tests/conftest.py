"""
Pytest fixtures for QuickPOS backend tests.

Provides an in-memory database, a test client, staff accounts, a small menu
and a print dispatcher that records tickets instead of printing them.
"""

import pytest
from quickpos import create_app
from quickpos.extensions import db
from quickpos.models import Branch, Category, Product
from quickpos.models.auth import ROLE_MANAGER, ROLE_CASHIER
from quickpos.services.auth_service import create_user
from quickpos.services.print_service import PrintDispatcher, PrintResult, TicketSink
from quickpos.services.session_service import SessionContext, create_session

PASSWORD = "Password123"


class RecordingSink(TicketSink):
    """Sink that keeps every ticket it is sent."""

    name = "recording"

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent = []

    def send(self, ticket, data):
        self.sent.append((ticket, data))
        if self.succeed:
            return PrintResult(True, self.name, "recorded")
        return PrintResult(False, self.name, "recording sink offline")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PRINT_BRIDGE_ENABLED': False,
        'PRINT_DIALOG_ENABLED': False,
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


@pytest.fixture(scope='function')
def printer(app):
    """Replace the app-wide print dispatcher with a recording one."""
    sink = RecordingSink()
    previous = app.extensions.get("quickpos.print_dispatcher")
    app.extensions["quickpos.print_dispatcher"] = PrintDispatcher([sink])
    yield sink
    if previous is None:
        app.extensions.pop("quickpos.print_dispatcher", None)
    else:
        app.extensions["quickpos.print_dispatcher"] = previous


@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(name="Centre", location="Bd Zerktouni")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    branch = Branch(name="Marina", location="Corniche")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def manager(db_session):
    return create_user("manager@test.local", PASSWORD, ROLE_MANAGER, full_name="Manager")


@pytest.fixture(scope='function')
def cashier(db_session, branch):
    return create_user("cashier@test.local", PASSWORD, ROLE_CASHIER, full_name="Cashier", branch_id=branch.id)


@pytest.fixture(scope='function')
def other_cashier(db_session, other_branch):
    return create_user("cashier2@test.local", PASSWORD, ROLE_CASHIER, branch_id=other_branch.id)


@pytest.fixture(scope='function')
def manager_ctx(manager):
    return SessionContext.for_user(manager)


@pytest.fixture(scope='function')
def cashier_ctx(cashier):
    return SessionContext.for_user(cashier)


@pytest.fixture(scope='function')
def menu(db_session):
    """Two categories: Burgers (Burger 45.00) and Drinks (Soda 12.50, Juice unavailable)."""
    burgers = Category(name="Burgers", sort_order=1)
    drinks = Category(name="Drinks", sort_order=2)
    db_session.add_all([burgers, drinks])
    db_session.flush()

    products = {
        "burger": Product(category_id=burgers.id, name="Burger", price_cents=4500, sort_order=1),
        "fries": Product(category_id=burgers.id, name="Fries", price_cents=1500, sort_order=2),
        "soda": Product(category_id=drinks.id, name="Soda", price_cents=1250, sort_order=1),
        "juice": Product(category_id=drinks.id, name="Juice", price_cents=1800, sort_order=2, available=False),
    }
    db_session.add_all(products.values())
    db_session.commit()
    products["burgers"] = burgers
    products["drinks"] = drinks
    return products


def auth_headers(user, user_agent="pytest"):
    """Authorization header for a fresh session of `user`."""
    _, token = create_session(user.id, user_agent=user_agent)
    return {"Authorization": f"Bearer {token}", "User-Agent": user_agent}


@pytest.fixture(scope='function')
def manager_headers(manager):
    return auth_headers(manager)


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return auth_headers(cashier)
