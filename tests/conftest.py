import pyotp
import pytest

from app import create_app
from config import TestingConfig
from models import db as _db
from security.password import hash_password
from tests.helpers import ALICE_EMAIL, ALICE_PASSWORD, reload_user


class Outbox:
    """
    Stand-in for the SMTP sender. Records every code "mailed"; set
    fail_with to make delivery fail the way a dead transport would.
    """

    def __init__(self):
        self.messages = []
        self.fail_with = None

    def send(self, email, code, ttl_minutes):
        if self.fail_with:
            return False, self.fail_with
        self.messages.append({"to": email, "code": code, "ttl_minutes": ttl_minutes})
        return True, None

    def last_code(self):
        assert self.messages, "no code was sent"
        return self.messages[-1]["code"]


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def app(outbox):
    app = create_app(TestingConfig, send_code=outbox.send)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["auth"]


@pytest.fixture
def alice(services):
    return services.credentials.create_user(ALICE_EMAIL, "Alice", hash_password(ALICE_PASSWORD))


@pytest.fixture
def alice_with_app_2fa(services, alice):
    """Alice with a confirmed authenticator; returns (user, secret)."""
    provisioning = services.guard.begin_enable_totp(alice)
    services.guard.confirm_enable_totp(alice, pyotp.TOTP(provisioning.secret).now())
    return reload_user(alice.id), provisioning.secret


