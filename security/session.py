import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from models import db
from models.session import Session
from utils.audit import client_ip, client_user_agent
from utils.errors import AuthenticationError, ExpiredError


def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing high-entropy bearer tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str


class SessionIssuer:
    """
    Signed bearer tokens plus a parallel sessions row per token. A token is
    only honoured by verify_session while its row exists, so deleting the row
    (logout) revokes it immediately.
    """

    def __init__(self, signing_key: str, algorithm: str = "HS256", lifetime_seconds: int = 7 * 24 * 60 * 60):
        if not signing_key:
            raise ValueError("A signing key is required")
        self._signing_key = signing_key
        self.algorithm = algorithm
        self.lifetime_seconds = lifetime_seconds

    @classmethod
    def from_config(cls, config) -> "SessionIssuer":
        return cls(
            signing_key=config.get("JWT_SECRET_KEY") or config["SECRET_KEY"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            lifetime_seconds=config.get("SESSION_LIFETIME_SECONDS", 7 * 24 * 60 * 60),
        )

    def mint(self, user_id: str, email: str) -> str:
        now = datetime.now(tz=timezone.utc)
        payload = {
            "jti": uuid.uuid4().hex,
            "userId": user_id,
            "email": email,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.lifetime_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._signing_key, algorithm=self.algorithm)

    def verify_token(self, token) -> TokenClaims:
        """Signature and expiry only; does not look at the sessions table."""
        if not token or not isinstance(token, str):
            raise AuthenticationError("Invalid token")
        try:
            decoded = jwt.decode(
                token,
                self._signing_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "userId", "email"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")
        return TokenClaims(user_id=decoded["userId"], email=decoded["email"])

    def create_session(self, user_id: str, token: str) -> Session:
        now = datetime.utcnow()
        row = Session(
            user_id=user_id,
            token_hash=_hash_token(token),
            created_at=now,
            last_seen_at=now,
            expires_at=now + timedelta(seconds=self.lifetime_seconds),
            ip=client_ip(),
            user_agent=client_user_agent(),
        )
        db.session.add(row)
        db.session.commit()
        return row

    def issue(self, user_id: str, email: str) -> str:
        token = self.mint(user_id, email)
        self.create_session(user_id, token)
        return token

    def delete_session(self, token: str) -> bool:
        if not token:
            return False
        deleted = Session.query.filter_by(token_hash=_hash_token(token)).delete()
        db.session.commit()
        return deleted > 0

    def verify_session(self, token):
        """
        Returns the user id for a live session, else None. Integration point
        for every feature that only needs "who is calling".
        """
        try:
            claims = self.verify_token(token)
        except (AuthenticationError, ExpiredError):
            return None

        sess = Session.query.filter_by(token_hash=_hash_token(token)).first()
        if not sess or sess.user_id != claims.user_id:
            return None

        now = datetime.utcnow()
        if sess.expires_at <= now:
            # lazy purge
            db.session.delete(sess)
            db.session.commit()
            return None

        sess.last_seen_at = now
        db.session.commit()
        return sess.user_id

    @staticmethod
    def purge_expired() -> int:
        deleted = Session.query.filter(Session.expires_at <= datetime.utcnow()).delete()
        db.session.commit()
        return deleted
