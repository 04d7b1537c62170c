from datetime import datetime
from models.db import db


class Throttle(db.Model):
    """
    Counter row shared by the login lockout (scope LOGIN_FAIL, key email|ip)
    and the per-IP login rate window (scope LOGIN_RATE, key ip).
    """
    __tablename__ = "throttles"
    __table_args__ = (db.UniqueConstraint("scope", "key", name="uq_throttles_scope_key"),)

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(32), nullable=False)
    key = db.Column(db.String(320), nullable=False, index=True)

    count = db.Column(db.Integer, default=0, nullable=False)
    window_start = db.Column(db.DateTime, nullable=True)
    locked_until = db.Column(db.DateTime, nullable=True)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
