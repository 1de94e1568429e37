"""
Shared pytest fixtures for the PlazaFuel test suite.

All tests run against an in-memory SQLite database (TestingConfig).
A single app context is pushed for the whole session so that SQLAlchemy
objects remain attached throughout.  After each test, clean_db wipes all
rows so tests are fully independent.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from flask import g

from app import create_app
from extensions import db as _db


PASSWORD = 'TestPass1!'
T0 = datetime(2025, 3, 1, 8, 0)


# ---------------------------------------------------------------------------
# Application / database lifecycle
# ---------------------------------------------------------------------------

@pytest.fixture(scope='session')
def app():
    """Create a test Flask application with an in-memory SQLite database."""
    application = create_app('testing')
    ctx = application.app_context()
    ctx.push()
    _db.create_all()
    yield application
    _db.session.remove()
    _db.drop_all()
    ctx.pop()


@pytest.fixture(autouse=True)
def clean_db(app):
    """Wipe every table after each test so tests never share state."""
    yield
    from services.reference_service import invalidate_reference_snapshot
    invalidate_reference_snapshot()
    # Requests reuse the session app context, so drop Flask-Login's cached user
    g.pop('_login_user', None)
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    _db.session.expunge_all()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, user):
    """Mark *client*'s session as logged in as *user*."""
    with client.session_transaction() as sess:
        sess['_user_id'] = str(user.id)
        sess['_fresh'] = True


# ---------------------------------------------------------------------------
# Common model helpers
# ---------------------------------------------------------------------------

def make_location(name, balance='0.00'):
    from models.locations import Location, LocationTank
    loc = Location(name=name)
    loc.tank = LocationTank(current_balance=Decimal(balance))
    _db.session.add(loc)
    _db.session.commit()
    return loc


def make_generator(location, name):
    from models.generators import Generator
    gen = Generator(location_id=location.id, name=name)
    _db.session.add(gen)
    _db.session.commit()
    return gen


def make_user(email, role='user', location=None, name=None):
    from models.users import User
    u = User(
        email=email,
        name=name,
        role=role,
        location_id=location.id if location else None,
    )
    u.set_password(PASSWORD)
    _db.session.add(u)
    _db.session.commit()
    return u


def make_txn(user, location, amount, occurred, recorded=None, generator=None, odometer=None, notes=None):
    """Insert a fuel transaction; *occurred*/*recorded* are hour offsets from T0."""
    from models.fuel_transactions import FuelTransaction
    txn = FuelTransaction(
        user_id=user.id,
        location_id=location.id,
        generator_id=generator.id if generator else None,
        fuel_amount=Decimal(str(amount)),
        transaction_date=T0 + timedelta(hours=occurred),
        created_at=T0 + timedelta(hours=recorded if recorded is not None else occurred),
        odometer_hours=Decimal(str(odometer)) if odometer is not None else None,
        notes=notes,
    )
    _db.session.add(txn)
    _db.session.commit()
    return txn


@pytest.fixture
def plaza(app):
    return make_location('North Plaza', balance='500.00')


@pytest.fixture
def other_plaza(app):
    return make_location('South Plaza', balance='200.00')


@pytest.fixture
def generator(plaza):
    return make_generator(plaza, 'Gen A')


@pytest.fixture
def admin(app):
    return make_user('admin@example.com', role='admin', name='Admin User')


@pytest.fixture
def manager(plaza):
    return make_user('manager@example.com', role='manager', location=plaza, name='Plaza Manager')


@pytest.fixture
def field_user(plaza):
    return make_user('alice@example.com', role='user', location=plaza, name='Alice')


@pytest.fixture
def second_user(plaza):
    return make_user('bob@example.com', role='user', location=plaza, name='Bob')
