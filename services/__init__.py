from flask import current_app

from security.email_otp import EmailOTPProvider
from security.session import SessionIssuer
from security.totp import TOTPProvider
from utils.emailer import send_two_factor_code

from .account_security import AccountSecurityGuard, IssuedCode
from .credentials import CredentialStore
from .login import LoginOrchestrator, LoginResult, available_methods


class AuthServices:
    """Everything the auth blueprints need, wired from app.config."""

    def __init__(self, config, send_code=send_two_factor_code):
        self.credentials = CredentialStore()
        self.totp = TOTPProvider.from_config(config)
        self.email_otp = EmailOTPProvider.from_config(config)
        self.sessions = SessionIssuer.from_config(config)
        self.login = LoginOrchestrator(
            self.credentials,
            self.totp,
            self.email_otp,
            self.sessions,
            send_code,
            challenge_ttl_seconds=config.get("LOGIN_CHALLENGE_TTL_SECONDS", 600),
            max_code_attempts=config.get("LOGIN_CODE_MAX_ATTEMPTS", 0),
        )
        self.guard = AccountSecurityGuard(self.credentials, self.totp, self.email_otp, send_code)

    def purge_expired(self) -> dict:
        return {
            "sessions": self.sessions.purge_expired(),
            "email_codes": self.email_otp.purge_expired(),
            "login_challenges": self.login.purge_expired(),
        }


def init_app(app, send_code=send_two_factor_code):
    app.extensions["auth"] = AuthServices(app.config, send_code=send_code)
    return app.extensions["auth"]


def get_services() -> AuthServices:
    return current_app.extensions["auth"]


def verify_session(token):
    """user id for a live bearer token, else None"""
    return get_services().sessions.verify_session(token)
