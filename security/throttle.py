from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db
from models.throttle import Throttle
from utils.audit import client_ip

LOGIN_FAIL = "LOGIN_FAIL"
LOGIN_RATE = "LOGIN_RATE"


def _ip() -> str:
    return client_ip() or "unknown"


def _find(scope: str, key: str):
    return Throttle.query.filter_by(scope=scope, key=key).first()


def _row(scope: str, key: str, create: bool = False):
    row = _find(scope, key)
    if row is None and create:
        row = Throttle(scope=scope, key=key, count=0)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            # a concurrent request inserted the same counter first
            db.session.rollback()
            row = _find(scope, key)
    return row


def _fail_key(email: str) -> str:
    # We track both email + ip to stop both targeted and broad attacks
    return f"{email}|{_ip()}"


def is_locked(email: str) -> tuple[bool, int]:
    """
    Returns (locked, seconds_remaining)
    """
    row = _row(LOGIN_FAIL, _fail_key(email))
    if not row or not row.locked_until:
        return False, 0

    now = datetime.utcnow()
    if row.locked_until <= now:
        return False, 0

    seconds = int((row.locked_until - now).total_seconds())
    return True, max(seconds, 1)


def register_failure(email: str) -> tuple[int, bool]:
    """
    Increments failure counter. Returns (fail_count, locked_now)
    """
    now = datetime.utcnow()
    row = _row(LOGIN_FAIL, _fail_key(email), create=True)

    row.count += 1
    row.window_start = row.window_start or now

    max_attempts = current_app.config.get("MAX_LOGIN_ATTEMPTS", 5)
    lock_minutes = current_app.config.get("LOCKOUT_MINUTES", 1)

    locked_now = False
    if row.count >= max_attempts:
        row.locked_until = now + timedelta(minutes=lock_minutes)
        row.count = 0
        locked_now = True

    db.session.commit()
    return row.count, locked_now


def reset_attempts(email: str):
    """
    Clears failure counter after successful login.
    """
    row = _row(LOGIN_FAIL, _fail_key(email))
    if not row:
        return
    db.session.delete(row)
    db.session.commit()


def check_and_increment_login_rate() -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Simple fixed window per IP.
    """
    now = datetime.utcnow()

    window_seconds = current_app.config.get("LOGIN_RATE_WINDOW_SECONDS", 60)
    max_requests = current_app.config.get("LOGIN_RATE_MAX_REQUESTS", 15)

    row = _row(LOGIN_RATE, _ip(), create=True)
    if row.window_start is None:
        row.window_start = now

    window_end = row.window_start + timedelta(seconds=window_seconds)

    # Reset window if expired
    if now >= window_end:
        row.window_start = now
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0
