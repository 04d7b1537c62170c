from functools import wraps
from flask import g, request, jsonify
from models import db
from models.user import User


def bearer_token():
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip() or None


def load_current_user():
    from services import verify_session

    g.user = None
    g.token = None

    token = bearer_token()
    if not token:
        return
    user_id = verify_session(token)
    if not user_id:
        return
    g.token = token
    g.user = db.session.get(User, user_id)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
