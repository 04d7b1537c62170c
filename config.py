import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # Bearer tokens are signed with this key; falls back to SECRET_KEY
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ALGORITHM = "HS256"

    # SQLite database file stored next to the app as quantro_auth.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "quantro_auth.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 7 day session lifetime
    SESSION_LIFETIME_SECONDS = 7 * 24 * 60 * 60

    # Pending login (password ok, second factor outstanding)
    LOGIN_CHALLENGE_TTL_SECONDS = 10 * 60
    # 0 disables the cap on wrong second-factor codes per pending login
    LOGIN_CODE_MAX_ATTEMPTS = int(os.getenv("LOGIN_CODE_MAX_ATTEMPTS", "0"))

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_MINUTES = 1

    # Simple IP rate limit for login endpoint
    LOGIN_RATE_WINDOW_SECONDS = 60      # window size
    LOGIN_RATE_MAX_REQUESTS = 15        # max login requests per IP per window

    # Password hashing + policy
    BCRYPT_ROUNDS = 12
    PASSWORD_MIN_LEN = 8
    PASSWORD_MAX_LEN = 128
    PASSWORD_REQUIRE_UPPER = False
    PASSWORD_REQUIRE_LOWER = True
    PASSWORD_REQUIRE_DIGIT = True
    PASSWORD_REQUIRE_SYMBOL = False

    # Authenticator apps
    TOTP_ISSUER = os.getenv("TOTP_ISSUER", "Quantro")
    TOTP_DRIFT_WINDOW = 2

    # Email one-time codes
    EMAIL_OTP_TTL_MINUTES = int(os.getenv("EMAIL_OTP_TTL_MINUTES", "10"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")
    SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "5"))

    # Non-production only: echo email codes when no SMTP transport is set up
    EXPOSE_DEV_OTP = _env_bool("EXPOSE_DEV_OTP", "false")
    # Non-production only: include exception text in 500 responses
    EXPOSE_ERROR_DETAILS = _env_bool("EXPOSE_ERROR_DETAILS", "false")

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"

    SMTP_HOST = None
    EXPOSE_DEV_OTP = True
    EXPOSE_ERROR_DETAILS = True

    BCRYPT_ROUNDS = 4

    LOGIN_RATE_MAX_REQUESTS = 1000
