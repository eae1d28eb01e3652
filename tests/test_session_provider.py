from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from repositories import UserAccountRepository
from services.session_provider import LocalSessionProvider, SessionEvent, build_recovery_link


class Clock:
    def __init__(self):
        self.now = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def clocked_provider(email_service, clock):
    return LocalSessionProvider(email_service=email_service, clock=clock)


def _code_from(link):
    return parse_qs(urlsplit(link).query)["code"][0]


def test_sign_up_then_sign_in(provider):
    events = []
    provider.on_session_change(lambda event, session: events.append(event))

    assert provider.sign_up("Alice@Example.com", "secret-1").ok
    assert provider.get_current_session() is None

    assert provider.sign_in("alice@example.com", "secret-1").ok
    session = provider.get_current_session()
    assert session.identity.email == "alice@example.com"
    assert events == [SessionEvent.SIGNED_IN]


def test_password_is_hashed(provider):
    provider.sign_up("alice@example.com", "secret-1")
    account = UserAccountRepository.get_by_email("alice@example.com")
    assert account.password_hash != "secret-1"


def test_sign_in_rejects_bad_credentials(provider):
    provider.sign_up("alice@example.com", "secret-1")

    result = provider.sign_in("alice@example.com", "wrong-password")
    assert not result.ok
    assert result.error == "Invalid login credentials"
    assert not provider.sign_in("nobody@example.com", "secret-1").ok
    assert not provider.sign_in("", "").ok
    assert provider.get_current_session() is None


def test_sign_up_validation(provider):
    assert provider.sign_up("alice@example.com", "secret-1").ok
    assert provider.sign_up("ALICE@example.com", "secret-2").error == "User already registered"
    assert not provider.sign_up("not-an-email", "secret-1").ok
    assert not provider.sign_up("bob@example.com", "123").ok


def test_sign_out_emits_event(provider):
    provider.sign_up("alice@example.com", "secret-1")
    provider.sign_in("alice@example.com", "secret-1")
    events = []
    unsubscribe = provider.on_session_change(lambda event, session: events.append((event, session)))

    assert provider.sign_out().ok
    assert events == [(SessionEvent.SIGNED_OUT, None)]

    unsubscribe()
    provider.sign_out()
    assert len(events) == 1


def test_session_expires(clocked_provider, clock):
    clocked_provider.sign_up("alice@example.com", "secret-1")
    clocked_provider.sign_in("alice@example.com", "secret-1")
    events = []
    clocked_provider.on_session_change(lambda event, session: events.append(event))

    clock.advance(minutes=59)
    assert clocked_provider.get_current_session() is not None

    clock.advance(minutes=2)
    assert clocked_provider.get_current_session() is None
    assert events == [SessionEvent.SIGNED_OUT]


def test_refresh_extends_session(clocked_provider, clock):
    clocked_provider.sign_up("alice@example.com", "secret-1")
    clocked_provider.sign_in("alice@example.com", "secret-1")
    token = clocked_provider.get_current_session().access_token

    clock.advance(minutes=50)
    assert clocked_provider.refresh_session().ok
    clock.advance(minutes=50)

    session = clocked_provider.get_current_session()
    assert session is not None
    assert session.access_token != token


def test_refresh_without_session(provider):
    assert not provider.refresh_session().ok


def test_recovery_flow(provider, email_service):
    provider.sign_up("alice@example.com", "secret-1")
    events = []
    provider.on_session_change(lambda event, session: events.append(event))

    assert provider.request_credential_reset("alice@example.com", "http://localhost:8501/").ok
    to_email, link, _ = email_service.sent[0]
    assert to_email == "alice@example.com"
    assert "type=recovery" in link

    assert provider.exchange_code_for_session(_code_from(link)).ok
    assert provider.get_current_session().is_recovery
    assert provider.set_new_credential("new-secret").ok
    assert not provider.get_current_session().is_recovery
    assert events == [SessionEvent.PASSWORD_RECOVERY, SessionEvent.USER_UPDATED]

    provider.sign_out()
    assert not provider.sign_in("alice@example.com", "secret-1").ok
    assert provider.sign_in("alice@example.com", "new-secret").ok


def test_recovery_code_is_single_use(provider, email_service):
    provider.sign_up("alice@example.com", "secret-1")
    provider.request_credential_reset("alice@example.com", "http://localhost:8501/")
    code = _code_from(email_service.sent[0][1])

    assert provider.exchange_code_for_session(code).ok
    provider.sign_out()
    assert not provider.exchange_code_for_session(code).ok


def test_recovery_code_expires(clocked_provider, email_service, clock):
    clocked_provider.sign_up("alice@example.com", "secret-1")
    clocked_provider.request_credential_reset("alice@example.com", "http://localhost:8501/")
    code = _code_from(email_service.sent[0][1])

    clock.advance(minutes=31)
    result = clocked_provider.exchange_code_for_session(code)
    assert not result.ok
    assert result.error == "Recovery link has expired"


def test_reset_for_unknown_email_reports_success(provider, email_service):
    assert provider.request_credential_reset("ghost@example.com", "http://localhost:8501/").ok
    assert email_service.sent == []


def test_reset_fails_when_mail_cannot_be_sent(provider, email_service):
    provider.sign_up("alice@example.com", "secret-1")
    email_service.succeed = False
    assert not provider.request_credential_reset("alice@example.com", "http://localhost:8501/").ok


def test_set_new_credential_requires_session(provider):
    assert provider.set_new_credential("new-secret").error == "Auth session missing"


def test_failing_listener_does_not_break_others(provider):
    seen = []

    def broken(event, session):
        raise RuntimeError("boom")

    provider.on_session_change(broken)
    provider.on_session_change(lambda event, session: seen.append(event))
    provider.sign_out()

    assert seen == [SessionEvent.SIGNED_OUT]


def test_build_recovery_link_keeps_existing_query():
    link = build_recovery_link("http://localhost:8501/?lang=ru#/login", "abc")
    parts = urlsplit(link)
    assert parse_qs(parts.query) == {"lang": ["ru"], "code": ["abc"], "type": ["recovery"]}
    assert parts.fragment == "/login"
