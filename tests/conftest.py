import pytest

import config
import db_engine
from services.auth_state import AuthController
from services.session_provider import LocalSessionProvider


class FakeEmailService:
    """Collects outgoing recovery emails instead of talking to SMTP."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def send_password_reset(self, to_email, reset_link, expires_minutes):
        self.sent.append((to_email, reset_link, expires_minutes))
        return self.succeed


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("APP_TIMEZONE", "UTC")
    monkeypatch.setenv("STORE_RETRY_ATTEMPTS", "1")
    monkeypatch.setenv("NUMERIC_MODE", "lenient")
    config.reload_settings()
    db_engine.reset_engine()
    db_engine.init_db()
    yield
    db_engine.reset_engine()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def provider(email_service):
    return LocalSessionProvider(email_service=email_service)


@pytest.fixture
def auth(provider):
    controller = AuthController(provider)
    controller.start()
    return controller


@pytest.fixture
def signed_in(provider, auth):
    assert provider.sign_up("alice@example.com", "secret-1").ok
    assert provider.sign_in("alice@example.com", "secret-1").ok
    return auth
