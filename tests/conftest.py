"""Shared test fixtures for the Revo BTP test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off,
  in-memory local mirror)
- client: Flask test client
- db_session: clean database and local mirror per test
- seed_data: a user with their company
- FakeRemote: scriptable stand-in for the remote document store
"""

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from app.extensions import db as _db
from app.models.company import Company
from app.models.user import User
from app.services.document_service import RemoteSubscription


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after.

    Also drops the cached local mirror and document service so nothing
    leaks between tests.
    """
    app.extensions.pop("local_storage", None)
    app.extensions.pop("document_service", None)
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed the database with a user and their company (limit 3).

    Returns a dict with plain IDs so tests can use them outside the
    session that created them.
    """
    user = User(
        email="boss@revo.local",
        password_hash=generate_password_hash("chantier123"),
        full_name="Boss User",
        role="admin",
    )
    _db.session.add(user)
    _db.session.flush()

    company = Company(
        id=f"comp_{user.id}",
        name="Revo Construction",
        owner_id=user.id,
        simultaneous_limit=3,
        plan="free",
    )
    _db.session.add(company)
    user.company_id = company.id
    _db.session.commit()

    return {
        "user": user,
        "user_id": user.id,
        "company": company,
        "company_id": company.id,
        "email": "boss@revo.local",
        "password": "chantier123",
    }


def login(client, email="boss@revo.local", password="chantier123"):
    """Helper to log in through the JSON auth endpoint."""
    return client.post("/auth/login", json={"email": email, "password": password})


class FakeRemote:
    """In-memory remote store with scriptable failures.

    `fail_subscribe` is a RemoteError delivered through on_error instead of
    a snapshot; `fail_writes` is raised by create / update / delete.
    `raise_on_subscribe` is raised synchronously by subscribe().
    """

    def __init__(self, records=None, fail_subscribe=None, fail_writes=None,
                 raise_on_subscribe=None, deliver=True):
        self.records = [dict(r) for r in (records or [])]
        self.fail_subscribe = fail_subscribe
        self.fail_writes = fail_writes
        self.raise_on_subscribe = raise_on_subscribe
        self.deliver = deliver
        self.calls = []
        self.subscriptions = []
        self._next_id = 1

    def subscribe(self, collection, company_id, on_snapshot, on_error):
        self.calls.append(("subscribe", collection, company_id))
        if self.raise_on_subscribe is not None:
            raise self.raise_on_subscribe
        subscription = RemoteSubscription(self, (collection, company_id), on_snapshot, on_error)
        self.subscriptions.append(subscription)
        if self.deliver:
            if self.fail_subscribe is not None:
                on_error(self.fail_subscribe)
            else:
                on_snapshot([dict(r) for r in self.records])
        return subscription

    def _unregister(self, subscription):
        self.subscriptions.remove(subscription)

    def push(self, records=None, error=None):
        """Deliver a snapshot (or an error) to every live subscriber."""
        if records is not None:
            self.records = [dict(r) for r in records]
        for subscription in list(self.subscriptions):
            if error is not None:
                subscription.on_error(error)
            else:
                subscription.on_snapshot([dict(r) for r in self.records])

    def create(self, collection, company_id, record, created_by=None):
        self.calls.append(("create", collection, record))
        if self.fail_writes is not None:
            raise self.fail_writes
        doc_id = f"doc_{self._next_id}"
        self._next_id += 1
        self.records.append({**record, "id": doc_id})
        self.push()
        return doc_id

    def update(self, collection, company_id, doc_id, changes):
        self.calls.append(("update", collection, doc_id, changes))
        if self.fail_writes is not None:
            raise self.fail_writes
        self.records = [
            {**r, **changes} if r["id"] == doc_id else r for r in self.records
        ]
        self.push()

    def delete(self, collection, company_id, doc_id):
        self.calls.append(("delete", collection, doc_id))
        if self.fail_writes is not None:
            raise self.fail_writes
        self.records = [r for r in self.records if r["id"] != doc_id]
        self.push()

    def write_calls(self):
        return [c for c in self.calls if c[0] in ("create", "update", "delete")]
