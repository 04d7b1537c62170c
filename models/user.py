import uuid
from datetime import datetime
from models.db import db
from models.enums import TwoFactorMethod


def _new_id() -> str:
    return uuid.uuid4().hex


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(32), primary_key=True, default=_new_id)

    # always stored normalized (stripped + lower-cased)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False, default="")
    password_hash = db.Column(db.String(255), nullable=False)

    two_factor_enabled = db.Column(db.Boolean, default=False, nullable=False)
    # only set once a second factor has been provisioned; never serialized
    two_factor_secret = db.Column(db.String(64), nullable=True)
    two_factor_method = db.Column(db.Enum(TwoFactorMethod, name="two_factor_method"), nullable=True)

    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # compare-and-swap counter, bumped on every UPDATE
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "twoFactorEnabled": self.two_factor_enabled,
            "twoFactorMethod": self.two_factor_method.value if self.two_factor_enabled and self.two_factor_method else None,
            "emailVerified": self.email_verified,
        }
