import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from models import db
from models.enums import LoginState, TwoFactorMethod
from models.login_challenge import LoginChallenge
from models.user import User
from security.password import dummy_verify, verify_password
from utils.errors import AuthenticationError, ExpiredError, NotFoundError, ValidationError
from utils.locks import challenge_locks

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_PENDING_LOGIN = "Invalid or expired login session. Please sign in again."


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def available_methods(user: User) -> List[TwoFactorMethod]:
    """Second factors a login may use, authenticator first."""
    methods = []
    if user.two_factor_method is TwoFactorMethod.APP and user.two_factor_secret:
        methods.append(TwoFactorMethod.APP)
    # the account address can always receive a code
    methods.append(TwoFactorMethod.EMAIL)
    return methods


@dataclass
class LoginResult:
    state: LoginState
    user: Optional[User] = None
    token: Optional[str] = None
    pending_token: Optional[str] = None
    methods: List[TwoFactorMethod] = field(default_factory=list)
    method: Optional[TwoFactorMethod] = None
    email_sent: Optional[bool] = None
    warning: Optional[str] = None
    # raw emailed code; only the HTTP layer decides whether it may be echoed
    issued_code: Optional[str] = None

    @property
    def requires_2fa(self) -> bool:
        return self.state in (LoginState.AWAITING_METHOD_CHOICE, LoginState.AWAITING_CODE)


class LoginOrchestrator:
    """
    Credentials -> (method choice -> code) -> session. Progress between steps
    is a LoginChallenge row addressed by an opaque pending-login token, so a
    client cannot skip or forge a step.
    """

    def __init__(self, credentials, totp, email_otp, sessions, send_code,
                 challenge_ttl_seconds: int = 600, max_code_attempts: int = 0):
        self.credentials = credentials
        self.totp = totp
        self.email_otp = email_otp
        self.sessions = sessions
        self.send_code = send_code
        self.challenge_ttl_seconds = challenge_ttl_seconds
        self.max_code_attempts = max_code_attempts

    # AWAITING_CREDENTIALS

    def submit_credentials(self, email, password, code=None) -> LoginResult:
        if not isinstance(email, str) or not email.strip() or not isinstance(password, str) or not password:
            raise ValidationError("Email and password are required")

        try:
            user = self.credentials.get_by_email(email)
        except NotFoundError:
            dummy_verify(password)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not verify_password(password, user.password_hash):
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not user.two_factor_enabled:
            return self._authenticated(user)

        methods = available_methods(user)

        # authenticator code sent along with the password skips the wizard
        if isinstance(code, str) and code.strip() and TwoFactorMethod.APP in methods:
            if not self.totp.verify(user.two_factor_secret, code):
                raise AuthenticationError("Invalid code")
            return self._authenticated(user)

        pending_token = secrets.token_urlsafe(32)
        now = datetime.utcnow()
        challenge = LoginChallenge(
            user_id=user.id,
            token_hash=_hash_token(pending_token),
            state=LoginState.AWAITING_METHOD_CHOICE,
            created_at=now,
            expires_at=now + timedelta(seconds=self.challenge_ttl_seconds),
        )
        db.session.add(challenge)
        db.session.commit()

        return LoginResult(
            state=LoginState.AWAITING_METHOD_CHOICE,
            user=user,
            pending_token=pending_token,
            methods=methods,
        )

    # AWAITING_METHOD_CHOICE (and resend from AWAITING_CODE)

    def choose_method(self, pending_token, method) -> LoginResult:
        chosen = TwoFactorMethod.parse(method)
        if chosen is None:
            raise ValidationError("method must be 'app' or 'email'")

        token_hash = self._token_hash(pending_token)
        with challenge_locks.hold(token_hash):
            challenge = self._load_challenge(token_hash)
            if challenge.state not in (LoginState.AWAITING_METHOD_CHOICE, LoginState.AWAITING_CODE):
                raise ValidationError("Verification method can no longer be changed")

            user = self.credentials.get_by_id(challenge.user_id)
            if chosen not in available_methods(user):
                raise ValidationError("Verification method not available for this account")

            result = LoginResult(state=LoginState.AWAITING_CODE, user=user, method=chosen,
                                 pending_token=pending_token)
            if chosen is TwoFactorMethod.EMAIL:
                code = self.email_otp.issue(user.email, user.id)
                sent, error = self.send_code(user.email, code, self.email_otp.ttl_minutes)
                result.issued_code = code
                result.email_sent = sent
                if not sent:
                    result.warning = f"Verification email could not be delivered: {error}"
            elif chosen is TwoFactorMethod.APP:
                # the authenticator already holds the secret
                pass
            else:
                raise ValueError(f"Unhandled second factor method: {chosen!r}")

            challenge.method = chosen
            challenge.state = LoginState.AWAITING_CODE
            db.session.commit()

        return result

    # AWAITING_CODE

    def verify_code(self, pending_token, code) -> LoginResult:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("Verification code is required")

        token_hash = self._token_hash(pending_token)
        with challenge_locks.hold(token_hash):
            challenge = self._load_challenge(token_hash)
            if challenge.state is not LoginState.AWAITING_CODE:
                raise ValidationError("Choose a verification method first")

            user = self.credentials.get_by_id(challenge.user_id)

            if challenge.method is TwoFactorMethod.APP:
                ok = self.totp.verify(user.two_factor_secret, code)
            elif challenge.method is TwoFactorMethod.EMAIL:
                ok = self._check_email_code(user, code)
            else:
                raise ValueError(f"Unhandled second factor method: {challenge.method!r}")

            if not ok:
                challenge.failed_attempts += 1
                if self.max_code_attempts and challenge.failed_attempts >= self.max_code_attempts:
                    challenge.state = LoginState.REJECTED
                    db.session.commit()
                    raise AuthenticationError("Too many invalid codes. Please sign in again.")
                db.session.commit()
                raise AuthenticationError("Invalid code")

            db.session.delete(challenge)
            db.session.commit()

        return self._authenticated(user)

    def _check_email_code(self, user: User, code: str) -> bool:
        # ExpiredError propagates: a stale code is not a wrong guess, so it
        # does not count toward max_code_attempts
        try:
            result = self.email_otp.verify(user.email, code)
        except (AuthenticationError, NotFoundError):
            return False
        return result.user_id == user.id

    def _authenticated(self, user: User) -> LoginResult:
        token = self.sessions.issue(user.id, user.email)
        return LoginResult(state=LoginState.AUTHENTICATED, user=user, token=token)

    @staticmethod
    def _token_hash(pending_token) -> str:
        if not isinstance(pending_token, str) or not pending_token:
            raise ValidationError("pendingToken is required")
        return _hash_token(pending_token)

    @staticmethod
    def _load_challenge(token_hash: str) -> LoginChallenge:
        challenge = LoginChallenge.query.filter_by(token_hash=token_hash).first()
        if challenge is None or challenge.state is LoginState.REJECTED:
            raise AuthenticationError(INVALID_PENDING_LOGIN)
        if challenge.expires_at <= datetime.utcnow():
            db.session.delete(challenge)
            db.session.commit()
            raise ExpiredError(INVALID_PENDING_LOGIN)
        return challenge

    @staticmethod
    def purge_expired() -> int:
        deleted = LoginChallenge.query.filter(LoginChallenge.expires_at <= datetime.utcnow()).delete()
        db.session.commit()
        return deleted
