from datetime import datetime
from models.db import db
from models.enums import LoginState, TwoFactorMethod


class LoginChallenge(db.Model):
    __tablename__ = "login_challenges"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=False, index=True)

    # hash of the pending-login token handed to the client
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    state = db.Column(db.Enum(LoginState, name="login_state"), nullable=False,
                      default=LoginState.AWAITING_METHOD_CHOICE)
    method = db.Column(db.Enum(TwoFactorMethod, name="login_challenge_method"), nullable=True)
    failed_attempts = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
