import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from models import db
from models.email_code import EmailCode
from utils.errors import AuthenticationError, ExpiredError, NotFoundError
from utils.locks import email_code_locks

CODE_LENGTH = 6


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class EmailCodeResult:
    valid: bool
    user_id: str


class EmailOTPProvider:
    """
    Six digit codes mailed to the account address. One live code per
    normalized email; issuing replaces, a successful verify consumes.
    """

    def __init__(self, secret_key: str, ttl_minutes: int = 10):
        self._key = secret_key.encode("utf-8")
        self.ttl_minutes = ttl_minutes

    @classmethod
    def from_config(cls, config) -> "EmailOTPProvider":
        return cls(
            secret_key=config["SECRET_KEY"],
            ttl_minutes=config.get("EMAIL_OTP_TTL_MINUTES", 10),
        )

    def _hash_code(self, email: str, code: str) -> str:
        return hmac.new(self._key, f"{email}:{code}".encode("utf-8"), hashlib.sha256).hexdigest()

    @staticmethod
    def generate_code() -> str:
        return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"

    def issue(self, email: str, user_id: str, ttl_minutes: int = None) -> str:
        key = normalize_email(email)
        code = self.generate_code()
        expires_at = datetime.utcnow() + timedelta(minutes=ttl_minutes or self.ttl_minutes)

        with email_code_locks.hold(key):
            row = EmailCode.query.filter_by(email=key).first()
            if row is None:
                row = EmailCode(email=key)
                db.session.add(row)
            # overwrite: any earlier unconsumed code stops working here
            row.user_id = user_id
            row.code_hash = self._hash_code(key, code)
            row.created_at = datetime.utcnow()
            row.expires_at = expires_at
            db.session.commit()

        return code

    def verify(self, email: str, submitted_code) -> EmailCodeResult:
        key = normalize_email(email)
        submitted = submitted_code.strip() if isinstance(submitted_code, str) else ""

        with email_code_locks.hold(key):
            row = EmailCode.query.filter_by(email=key).first()
            if row is None:
                raise NotFoundError("No active code. Please request a new one.")

            if row.expires_at <= datetime.utcnow():
                db.session.delete(row)
                db.session.commit()
                raise ExpiredError("Code expired. Please request a new one.")

            if not hmac.compare_digest(row.code_hash, self._hash_code(key, submitted)):
                raise AuthenticationError("Invalid code")

            user_id = row.user_id
            db.session.delete(row)
            db.session.commit()

        return EmailCodeResult(valid=True, user_id=user_id)

    def discard(self, email: str) -> bool:
        key = normalize_email(email)
        with email_code_locks.hold(key):
            deleted = EmailCode.query.filter_by(email=key).delete()
            db.session.commit()
        return deleted > 0

    @staticmethod
    def purge_expired() -> int:
        deleted = EmailCode.query.filter(EmailCode.expires_at <= datetime.utcnow()).delete()
        db.session.commit()
        return deleted
