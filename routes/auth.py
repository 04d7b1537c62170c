from flask import Blueprint, request, jsonify, current_app, g

from security.password import hash_password
from security.password_policy import validate_password
from security.throttle import check_and_increment_login_rate, is_locked, register_failure, reset_attempts
from services import get_services
from utils.audit import log_event
from utils.auth_context import login_required
from utils.errors import AuthenticationError, ConflictError, RateLimitedError, ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _text(data: dict, name: str) -> str:
    value = data.get(name)
    return value if isinstance(value, str) else ""


def login_response(result):
    """Shared by /auth/login and /auth/2fa/verify once a session exists."""
    return jsonify(token=result.token, user=result.user.to_public_dict()), 200


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = _text(data, "email").strip().lower()
    name = _text(data, "name").strip()
    password = _text(data, "password")

    if not name or not email or not password:
        raise ValidationError("Name, email, and password are required")
    if not _is_valid_email(email):
        raise ValidationError("Invalid email")
    if len(name) > 120:
        raise ValidationError("Name is too long")
    valid, errors = validate_password(password)
    if not valid:
        raise ValidationError("Password does not meet policy", details=errors)

    try:
        user = get_services().credentials.create_user(email, name, hash_password(password))
    except ConflictError:
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        raise

    log_event("REGISTER_SUCCESS", user_id=user.id)
    return jsonify(user=user.to_public_dict()), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = _text(data, "email").strip().lower()
    password = _text(data, "password")
    code = data.get("code")

    if not email or not password:
        raise ValidationError("Email and password are required")

    allowed, retry_after = check_and_increment_login_rate()
    if not allowed:
        log_event("LOGIN_RATE_LIMIT", metadata={"email": email, "retry_after": retry_after})
        raise RateLimitedError("Too many login requests. Slow down.", retry_after_seconds=retry_after)

    locked, seconds_left = is_locked(email)
    if locked:
        log_event("LOGIN_LOCKED", metadata={"email": email, "seconds_left": seconds_left})
        raise RateLimitedError("Account temporarily locked. Try again later.", retry_after_seconds=seconds_left)

    try:
        result = get_services().login.submit_credentials(email, password, code=code)
    except AuthenticationError:
        fail_count, locked_now = register_failure(email)
        log_event("LOGIN_FAIL", metadata={"email": email, "fail_count": fail_count, "locked_now": locked_now})
        if locked_now:
            raise RateLimitedError(
                "Too many failed attempts. Account locked.",
                lockout_minutes=current_app.config.get("LOCKOUT_MINUTES", 1),
            )
        raise

    reset_attempts(email)

    if result.requires_2fa:
        log_event("LOGIN_2FA_REQUIRED", user_id=result.user.id)
        return jsonify(
            requires2FA=True,
            methods=[m.value for m in result.methods],
            pendingToken=result.pending_token,
        ), 200

    log_event("LOGIN_SUCCESS", user_id=result.user.id)
    return login_response(result)


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(user=g.user.to_public_dict()), 200


@auth_bp.post("/logout")
@login_required
def logout():
    get_services().sessions.delete_session(g.token)
    log_event("LOGOUT", user_id=g.user.id)
    return jsonify(loggedOut=True), 200
