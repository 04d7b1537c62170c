from datetime import datetime

from models import db
from models.throttle import Throttle
from security import throttle


class TestLoginFailureCounter:
    def test_failures_accumulate_then_lock(self, app):
        for expected in range(1, app.config["MAX_LOGIN_ATTEMPTS"]):
            assert throttle.register_failure("alice@example.com") == (expected, False)

        count, locked_now = throttle.register_failure("alice@example.com")
        assert locked_now is True
        assert count == 0
        assert throttle.is_locked("alice@example.com")[0] is True

    def test_reset_clears_counter(self, app):
        throttle.register_failure("alice@example.com")
        throttle.reset_attempts("alice@example.com")

        assert Throttle.query.count() == 0

    def test_counter_created_concurrently_is_reused(self, app, monkeypatch):
        # another request inserts the row between our lookup and our insert
        db.session.add(Throttle(scope=throttle.LOGIN_FAIL, key="alice@example.com|unknown",
                                count=2, window_start=datetime.utcnow()))
        db.session.commit()

        find = throttle._find
        lookups = []

        def miss_first_lookup(scope, key):
            lookups.append(key)
            return None if len(lookups) == 1 else find(scope, key)

        monkeypatch.setattr(throttle, "_find", miss_first_lookup)

        assert throttle.register_failure("alice@example.com") == (3, False)
        assert Throttle.query.filter_by(scope=throttle.LOGIN_FAIL).count() == 1


class TestLoginRateWindow:
    def test_requests_over_limit_are_refused(self, app):
        app.config["LOGIN_RATE_MAX_REQUESTS"] = 2

        assert throttle.check_and_increment_login_rate() == (True, 0)
        assert throttle.check_and_increment_login_rate() == (True, 0)
        allowed, retry_after = throttle.check_and_increment_login_rate()
        assert allowed is False
        assert retry_after >= 1
