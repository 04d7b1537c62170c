from datetime import datetime
from models.db import db


class EmailCode(db.Model):
    __tablename__ = "email_codes"

    id = db.Column(db.Integer, primary_key=True)
    # one live code per normalized email
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=False, index=True)

    code_hash = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
