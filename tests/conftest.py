"""
Shared pytest fixtures.

The default `app` runs against in-memory SQLite with header identity enabled.
Race tests use `file_app`, a file-backed database that several threads can
open their own connections to.
"""
from datetime import datetime, timedelta

import pytest

from fitpoints import create_app
from fitpoints.extensions import db

START = datetime(2026, 3, 2, 9, 0, 0)


class FakeClock:
    """Manually advanced replacement for datetime.utcnow."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def install_clock(app, clock):
    services = app.extensions['fitpoints']
    services['ledger'].clock = clock
    services['store'].clock = clock


@pytest.fixture
def app():
    """Testing app with a fresh schema."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def file_app(tmp_path):
    """Testing app on a file-backed SQLite database (for threads)."""
    app = create_app('testing', {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'fitpoints_race.db'}",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def clock(app):
    """Fake clock installed on the ledger and redemption store."""
    fake = FakeClock()
    install_clock(app, fake)
    return fake


@pytest.fixture
def services(app):
    return app.extensions['fitpoints']


@pytest.fixture
def redemption_service(services):
    return services['redemptions']


@pytest.fixture
def ledger(services):
    return services['ledger']


@pytest.fixture
def member_headers():
    return {'X-Member-ID': 'user-1', 'X-Member-Name': 'Kim Minji'}


@pytest.fixture
def other_member_headers():
    return {'X-Member-ID': 'user-2'}


@pytest.fixture
def staff_headers():
    return {'X-Staff-ID': 'staff-7'}


@pytest.fixture
def sample_account(ledger, clock):
    """Member user-1 with 2450 points."""
    ledger.create_account('user-1', 'Kim Minji')
    ledger.earn('user-1', 2450, 'Opening balance', source='manual')
    return ledger.get_account('user-1')
