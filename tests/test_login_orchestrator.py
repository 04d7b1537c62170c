from datetime import datetime, timedelta

import pyotp
import pytest

from models import db
from models.enums import LoginState, TwoFactorMethod
from models.login_challenge import LoginChallenge
from services import LoginOrchestrator
from tests.helpers import ALICE_EMAIL, ALICE_PASSWORD
from utils.errors import AuthenticationError, ExpiredError, ValidationError


@pytest.fixture
def login(services):
    return services.login


class TestCredentialsStep:
    def test_without_second_factor_returns_session(self, login, services, alice):
        result = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD)

        assert result.state is LoginState.AUTHENTICATED
        assert result.requires_2fa is False
        assert result.token
        assert services.sessions.verify_session(result.token) == alice.id

    def test_email_lookup_is_case_insensitive(self, login, alice):
        result = login.submit_credentials("ALICE@Example.com", ALICE_PASSWORD)
        assert result.state is LoginState.AUTHENTICATED

    def test_wrong_password_and_unknown_email_fail_identically(self, login, alice):
        with pytest.raises(AuthenticationError) as wrong_password:
            login.submit_credentials(ALICE_EMAIL, "wrongpassword1")
        with pytest.raises(AuthenticationError) as unknown_email:
            login.submit_credentials("mallory@example.com", ALICE_PASSWORD)

        assert wrong_password.value.message == unknown_email.value.message == "Invalid email or password"
        assert wrong_password.value.status_code == unknown_email.value.status_code == 401

    @pytest.mark.parametrize("email, password", [
        ("", ALICE_PASSWORD),
        (ALICE_EMAIL, ""),
        ("   ", ALICE_PASSWORD),
        (None, ALICE_PASSWORD),
        (ALICE_EMAIL, 12345678),
    ])
    def test_missing_input(self, login, alice, email, password):
        with pytest.raises(ValidationError):
            login.submit_credentials(email, password)

    def test_second_factor_pending(self, login, alice_with_app_2fa):
        result = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD)

        assert result.state is LoginState.AWAITING_METHOD_CHOICE
        assert result.requires_2fa is True
        assert result.token is None
        assert result.pending_token
        assert result.methods == [TwoFactorMethod.APP, TwoFactorMethod.EMAIL]

        challenge = LoginChallenge.query.one()
        assert challenge.state is LoginState.AWAITING_METHOD_CHOICE
        assert challenge.token_hash != result.pending_token

    def test_email_only_account_offers_email(self, login, services, alice):
        services.credentials.set_two_factor(alice.id, None, TwoFactorMethod.EMAIL, enabled=True)

        result = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD)
        assert result.methods == [TwoFactorMethod.EMAIL]

    def test_authenticator_code_with_credentials(self, login, alice_with_app_2fa):
        _, secret = alice_with_app_2fa

        result = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD, code=pyotp.TOTP(secret).now())
        assert result.state is LoginState.AUTHENTICATED
        assert result.token

    def test_bad_authenticator_code_with_credentials(self, login, alice_with_app_2fa):
        with pytest.raises(AuthenticationError):
            login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD, code="000000x")


class TestEmailPath:
    def test_email_code_completes_login(self, login, services, outbox, alice_with_app_2fa):
        user, _ = alice_with_app_2fa
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token

        chosen = login.choose_method(pending, "email")
        assert chosen.state is LoginState.AWAITING_CODE
        assert chosen.method is TwoFactorMethod.EMAIL
        assert chosen.email_sent is True
        assert outbox.messages[-1]["to"] == ALICE_EMAIL

        result = login.verify_code(pending, outbox.last_code())
        assert result.state is LoginState.AUTHENTICATED
        assert services.sessions.verify_session(result.token) == user.id
        assert LoginChallenge.query.count() == 0

    def test_resubmitting_code_fails(self, login, outbox, alice_with_app_2fa):
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        login.choose_method(pending, TwoFactorMethod.EMAIL)
        code = outbox.last_code()
        login.verify_code(pending, code)

        with pytest.raises(AuthenticationError):
            login.verify_code(pending, code)

    def test_wrong_code_stays_awaiting_code(self, login, outbox, alice_with_app_2fa):
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        login.choose_method(pending, "email")
        code = outbox.last_code()
        wrong = "000000" if code != "000000" else "111111"

        with pytest.raises(AuthenticationError):
            login.verify_code(pending, wrong)
        challenge = LoginChallenge.query.one()
        assert challenge.state is LoginState.AWAITING_CODE
        assert challenge.failed_attempts == 1

        assert login.verify_code(pending, code).state is LoginState.AUTHENTICATED

    def test_resend_replaces_code(self, login, outbox, alice_with_app_2fa):
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        login.choose_method(pending, "email")
        first = outbox.last_code()
        login.choose_method(pending, "email")
        second = outbox.last_code()

        if first != second:
            with pytest.raises(AuthenticationError):
                login.verify_code(pending, first)
        assert login.verify_code(pending, second).state is LoginState.AUTHENTICATED

    def test_delivery_failure_is_a_warning(self, login, outbox, alice_with_app_2fa):
        outbox.fail_with = "connection refused"
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token

        chosen = login.choose_method(pending, "email")
        assert chosen.state is LoginState.AWAITING_CODE
        assert chosen.email_sent is False
        assert "connection refused" in chosen.warning
        assert LoginChallenge.query.one().state is LoginState.AWAITING_CODE

        # the code was still issued and works
        assert login.verify_code(pending, chosen.issued_code).state is LoginState.AUTHENTICATED

    def test_expired_email_code(self, login, alice_with_app_2fa):
        from models.email_code import EmailCode

        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        code = login.choose_method(pending, "email").issued_code
        row = EmailCode.query.one()
        row.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()

        with pytest.raises(ExpiredError):
            login.verify_code(pending, code)
        challenge = LoginChallenge.query.one()
        assert challenge.state is LoginState.AWAITING_CODE
        assert challenge.failed_attempts == 0


class TestAppPath:
    def test_authenticator_code_completes_login(self, login, outbox, alice_with_app_2fa):
        _, secret = alice_with_app_2fa
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token

        chosen = login.choose_method(pending, "app")
        assert chosen.state is LoginState.AWAITING_CODE
        assert chosen.email_sent is None
        assert outbox.messages == []

        result = login.verify_code(pending, pyotp.TOTP(secret).now())
        assert result.state is LoginState.AUTHENTICATED

    def test_app_not_offered_without_authenticator(self, login, services, alice):
        services.credentials.set_two_factor(alice.id, None, TwoFactorMethod.EMAIL, enabled=True)
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token

        with pytest.raises(ValidationError):
            login.choose_method(pending, "app")


class TestStateMachine:
    def test_code_before_method_choice(self, login, alice_with_app_2fa):
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        with pytest.raises(ValidationError):
            login.verify_code(pending, "123456")

    @pytest.mark.parametrize("method", ["sms", "", None, 1])
    def test_unknown_method(self, login, alice_with_app_2fa, method):
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        with pytest.raises(ValidationError):
            login.choose_method(pending, method)

    def test_forged_pending_token(self, login, alice_with_app_2fa):
        login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD)
        with pytest.raises(AuthenticationError):
            login.choose_method("made-up-token", "app")

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_pending_token(self, login, token):
        with pytest.raises(ValidationError):
            login.choose_method(token, "app")

    def test_missing_code(self, login, alice_with_app_2fa):
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        login.choose_method(pending, "app")
        with pytest.raises(ValidationError):
            login.verify_code(pending, "  ")

    def test_expired_pending_login(self, login, alice_with_app_2fa):
        pending = login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        challenge = LoginChallenge.query.one()
        challenge.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()

        with pytest.raises(ExpiredError):
            login.choose_method(pending, "app")
        assert LoginChallenge.query.count() == 0

    def test_attempt_cap_rejects_login(self, services, alice_with_app_2fa):
        capped = LoginOrchestrator(
            services.credentials, services.totp, services.email_otp, services.sessions,
            lambda *args: (True, None), max_code_attempts=2,
        )
        pending = capped.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD).pending_token
        capped.choose_method(pending, "app")

        for _ in range(2):
            with pytest.raises(AuthenticationError):
                capped.verify_code(pending, "abcdef")
        assert LoginChallenge.query.one().state is LoginState.REJECTED

        with pytest.raises(AuthenticationError):
            capped.choose_method(pending, "app")

    def test_purge_expired(self, login, alice_with_app_2fa):
        login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD)
        login.submit_credentials(ALICE_EMAIL, ALICE_PASSWORD)
        challenge = LoginChallenge.query.first()
        challenge.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()

        assert login.purge_expired() == 1
        assert LoginChallenge.query.count() == 1
