import enum


class TwoFactorMethod(enum.Enum):
    APP = "app"
    EMAIL = "email"

    @classmethod
    def parse(cls, value):
        """Map a request value ("app" / "email") to a member, or None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class LoginState(enum.Enum):
    AWAITING_CREDENTIALS = "AWAITING_CREDENTIALS"
    AWAITING_METHOD_CHOICE = "AWAITING_METHOD_CHOICE"
    AWAITING_CODE = "AWAITING_CODE"
    AUTHENTICATED = "AUTHENTICATED"
    REJECTED = "REJECTED"
