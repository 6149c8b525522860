"""
Pytest fixtures for cash ledger tests.

Provides the application on an in-memory database, a per-test table wipe,
the Flask test client, register factories and a fake remote event store.
"""

import itertools

import pytest
from cashledger import create_app
from cashledger.extensions import db, replay_cache
from cashledger.services import register_service
from cashledger.services.remote_store import RemoteStoreError


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'OUTBOX_AUTO_DRAIN': False,
        'REMOTE_STORE_URL': None,
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
        replay_cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def register_factory(db_session):
    """Create registers with unique numbers: register_factory(name="Front")."""
    counter = itertools.count(1)

    def _make(**kwargs):
        n = next(counter)
        kwargs.setdefault("register_number", f"REG-{n:02d}")
        kwargs.setdefault("name", f"Register {n}")
        return register_service.create_register(**kwargs)

    return _make


@pytest.fixture(scope='function')
def register(register_factory):
    """A single closed register, REG-01."""
    return register_factory()


class FakeRemoteStore:
    """In-memory stand-in for RemoteEventStore."""

    def __init__(self, events=None):
        self.pushed = []
        self.events = list(events or [])
        self.fail_with = None

    def append_event(self, payload):
        if self.fail_with:
            raise RemoteStoreError(self.fail_with)
        self.pushed.append(payload)

    def list_events(self, register_id):
        return [e for e in self.events if e.get("register_id") == register_id]


@pytest.fixture(scope='function')
def fake_remote():
    return FakeRemoteStore()
