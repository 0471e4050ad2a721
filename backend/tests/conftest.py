"""
Pytest fixtures for JewelERP backend tests.

Provides the in-memory database, a seeded branch with staff, catalog and
customer rows, an in-memory cloud store and the test client.
"""

import pytest

from jewelerp import create_app
from jewelerp.extensions import db
from jewelerp.models import Branch, User
from jewelerp.services import catalog_service, customer_service
from jewelerp.services.auth_service import hash_password
from jewelerp.services.branch_service import BranchContext
from jewelerp.services.cloud_store import CloudStore, CloudStoreError

PASSWORD = "Password123!"


class FakeCloudStore(CloudStore):
    """
    In-memory stand-in for the Supabase tables.

    honor_filters=False returns every row of a table regardless of the
    filters, which lets tests feed rows the server should have excluded.
    """

    def __init__(self, *, honor_filters: bool = True):
        self.honor_filters = honor_filters
        self.tables: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_on: dict[tuple[str, int], str] = {}
        self.fail_select: set[str] = set()

    def _check(self, table, row_id):
        message = self.fail_on.get((table, row_id))
        if message:
            raise CloudStoreError(message, status_code=400)

    @staticmethod
    def _matches(row, filters):
        for column, op, value in filters:
            current = row.get(column)
            if op == "eq" and current != value:
                return False
            if op == "neq" and current == value:
                return False
            if op == "gt" and (current is None or str(current) <= str(value)):
                return False
        return True

    def select(self, table, filters=()):
        filters = list(filters)
        self.calls.append(("select", table, filters))
        if table in self.fail_select:
            raise CloudStoreError(f"GET {table} returned 500: boom", status_code=500)
        rows = list(self.tables.get(table, {}).values())
        if self.honor_filters:
            rows = [r for r in rows if self._matches(r, filters)]
        return [dict(r) for r in rows]

    def insert(self, table, row):
        self.calls.append(("insert", table, row["id"]))
        self._check(table, row["id"])
        self.tables.setdefault(table, {})[row["id"]] = dict(row)

    def update(self, table, row, match):
        self.calls.append(("update", table, match["id"]))
        self._check(table, match["id"])
        self.tables.setdefault(table, {}).setdefault(match["id"], {}).update(row)

    def delete(self, table, match):
        self.calls.append(("delete", table, match["id"]))
        self._check(table, match["id"])
        self.tables.get(table, {}).pop(match["id"], None)

    def seed(self, table, row):
        self.tables.setdefault(table, {})[row["id"]] = dict(row)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'BRANCH_ID': 1,
        'COMPANY_ID': 1,
        'BUSINESS_STATE': 'Gujarat',
        'SUPABASE_URL': None,
        'SUPABASE_KEY': None,
        'SYNC_AUTOSTART': False,
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
        app.extensions["cloud_store"] = None
        app.extensions.pop("sync_scheduler", None)

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.extensions["cloud_store"] = None


@pytest.fixture(scope='function')
def branch(db_session):
    """The branch this install runs as (id matches BRANCH_ID)."""
    branch = Branch(id=1, name="Main Branch", code="MAIN", state="Gujarat", company_id=1)
    db_session.add(branch)
    db_session.commit()
    return branch


def _make_user(db_session, username, role):
    user = User(
        branch_id=1,
        username=username,
        email=f"{username}@shop.local",
        full_name=username.title(),
        role=role,
        password_hash=hash_password(PASSWORD, rounds=4),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, branch):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def cashier_user(db_session, branch):
    return _make_user(db_session, "cashier", "cashier")


@pytest.fixture(scope='function')
def ctx(branch, admin_user):
    """Branch context acting as the admin."""
    return BranchContext(branch_id=branch.id, company_id=1, business_state="Gujarat", user_id=admin_user.id)


@pytest.fixture(scope='function')
def category(ctx):
    return catalog_service.create_category(ctx, name="Rings")


@pytest.fixture(scope='function')
def metal_type(ctx):
    return catalog_service.create_metal_type(ctx, name="Gold 22K", metal_code="G22", purity_percentage="91.6")


@pytest.fixture(scope='function')
def product(ctx, category, metal_type):
    """10 g ring, Rs 500/g making, two pieces in stock."""
    return catalog_service.create_product(ctx, {
        "product_name": "Gold Ring",
        "barcode": "RING0001",
        "category_id": category.id,
        "metal_type_id": metal_type.id,
        "gross_weight": "10",
        "stone_weight": "0",
        "making_charge_type": "per_gram",
        "making_charge": "500",
        "wastage_percentage": "0",
        "current_stock": 2,
    })


@pytest.fixture(scope='function')
def customer(ctx):
    return customer_service.create_customer(ctx, {
        "first_name": "Ravi",
        "last_name": "Patel",
        "mobile": "9876543210",
        "state": "Gujarat",
    })


@pytest.fixture(scope='function')
def fake_store(app, db_session):
    store = FakeCloudStore()
    app.extensions["cloud_store"] = store
    yield store
    app.extensions["cloud_store"] = None


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
