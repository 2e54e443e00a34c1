import os
import sys
from datetime import datetime, timedelta

import pytest

# Ensure the backend root (containing the `coinhost` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from coinhost import create_app, db
from coinhost.control import PairingResult
from coinhost.errors import ExternalServiceError
from coinhost.plans import DEFAULT_PLANS
from coinhost.services import get_services


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = []
    SIGNUP_BONUS_COINS = 10
    REFERRAL_BONUS_COINS = 5
    SERVER_PLANS = DEFAULT_PLANS
    RESOURCE_CONTROL_URL = None
    RESOURCE_CONTROL_TIMEOUT_SEC = 1
    EXPIRED_RETENTION_DAYS = 7
    ENABLE_SWEEPER = False


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeControl:
    """Stand-in for the pairing/session-control service."""

    def __init__(self):
        self.started = []
        self.stopped = []
        self.fail_stop = set()
        self.start_error = None
        self.next_session = 'sess-1'

    def start(self, phone_number):
        if self.start_error is not None:
            raise self.start_error
        self.started.append(phone_number)
        return PairingResult(pairing_code='ABCD-1234', session_reference=self.next_session)

    def stop(self, session_reference):
        if session_reference in self.fail_stop:
            raise ExternalServiceError('control service unavailable', upstream_status=503)
        self.stopped.append(session_reference)
        return {'ok': True}


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0))


@pytest.fixture()
def control():
    return FakeControl()


@pytest.fixture()
def flask_app(clock, control):
    application = create_app(TestConfig, control=control, clock=clock)
    with application.app_context():
        # Ensure models are imported so tables are created
        import coinhost.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return get_services(flask_app)


@pytest.fixture()
def make_account(services):
    counter = {'n': 0}

    def _make(username=None, referral_code=None, role='standard', coins=None):
        counter['n'] += 1
        username = username or f"user{counter['n']}"
        account = services.accounts.create_account(
            username, f'{username}@example.com', 'password', referral_code=referral_code, role=role,
        )
        if coins is not None:
            services.ledger.adjust_by_admin(account.id, 'set', coins, 'test funding')
        return account

    return _make
