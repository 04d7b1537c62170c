from dataclasses import dataclass
from typing import Optional

from models.enums import TwoFactorMethod
from models.user import User
from security.password import verify_password
from security.totp import TotpProvisioning
from utils.errors import AuthenticationError, ValidationError

from .credentials import ALREADY_ENABLED


@dataclass(frozen=True)
class IssuedCode:
    code: str
    email_sent: bool
    warning: Optional[str] = None


class AccountSecurityGuard:
    """Enable/disable of the second factor for an already signed-in user."""

    def __init__(self, credentials, totp, email_otp, send_code):
        self.credentials = credentials
        self.totp = totp
        self.email_otp = email_otp
        self.send_code = send_code

    def status(self, user: User) -> dict:
        user = self.credentials.get_by_id(user.id)
        return {
            "enabled": user.two_factor_enabled,
            "method": user.two_factor_method.value if user.two_factor_enabled and user.two_factor_method else None,
        }

    def begin_enable_totp(self, user: User) -> TotpProvisioning:
        """
        Store a pending secret. two_factor_enabled stays false until
        confirm_enable_totp sees a valid code from the new device.
        """
        user = self.credentials.get_by_id(user.id)
        if user.two_factor_enabled:
            raise ValidationError(ALREADY_ENABLED)

        provisioning = self.totp.generate_secret(user.email)
        self.credentials.set_two_factor(user.id, provisioning.secret, TwoFactorMethod.APP, require_disabled=True)
        return provisioning

    def confirm_enable_totp(self, user: User, code) -> User:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("Verification code is required")

        user = self.credentials.get_by_id(user.id)
        if user.two_factor_enabled:
            raise ValidationError(ALREADY_ENABLED)
        if user.two_factor_method is not TwoFactorMethod.APP or not user.two_factor_secret:
            raise ValidationError("Start authenticator setup first")

        secret = user.two_factor_secret
        if not self.totp.verify(secret, code):
            raise AuthenticationError("Invalid verification code")

        return self.credentials.mark_two_factor_confirmed(user.id, expected_secret=secret)

    def begin_enable_email_2fa(self, user: User) -> IssuedCode:
        user = self.credentials.get_by_id(user.id)
        if user.two_factor_enabled:
            raise ValidationError(ALREADY_ENABLED)

        code = self.email_otp.issue(user.email, user.id)
        sent, error = self.send_code(user.email, code, self.email_otp.ttl_minutes)
        warning = None if sent else f"Verification email could not be delivered: {error}"
        return IssuedCode(code=code, email_sent=sent, warning=warning)

    def confirm_enable_email_2fa(self, user: User, code, password) -> User:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("Verification code is required")
        if not isinstance(password, str) or not password:
            raise ValidationError("Password is required")

        user = self.credentials.get_by_id(user.id)
        if user.two_factor_enabled:
            raise ValidationError(ALREADY_ENABLED)

        # password first so a typo does not burn the emailed code
        if not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid password")

        result = self.email_otp.verify(user.email, code)
        if result.user_id != user.id:
            raise AuthenticationError("Invalid code")

        return self.credentials.set_two_factor(user.id, None, TwoFactorMethod.EMAIL, enabled=True,
                                             require_disabled=True)

    def disable(self, user: User, password) -> User:
        if not isinstance(password, str) or not password:
            raise ValidationError("Password is required to disable 2FA")

        user = self.credentials.get_by_id(user.id)
        if not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid password")

        user = self.credentials.clear_two_factor(user.id)
        self.email_otp.discard(user.email)
        return user
