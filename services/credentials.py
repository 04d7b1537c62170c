from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from models import db
from models.enums import TwoFactorMethod
from models.user import User
from security.email_otp import normalize_email
from utils.errors import ConflictError, NotFoundError, ValidationError
from utils.locks import user_locks

ALREADY_ENABLED = "2FA is already enabled. Disable it first."


class CredentialStore:
    """
    Durable user records. Mutations are serialized per user id in-process and
    guarded across processes by the row lock plus the version column.
    """

    def create_user(self, email: str, name: str, password_hash: str) -> User:
        key = normalize_email(email)
        if not key:
            raise ValidationError("Email is required")

        if User.query.filter_by(email=key).first() is not None:
            raise ConflictError("User with this email already exists")

        user = User(email=key, name=(name or "").strip(), password_hash=password_hash)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # lost the race against a concurrent registration
            db.session.rollback()
            raise ConflictError("User with this email already exists")
        return user

    def get_by_email(self, email: str) -> User:
        user = User.query.filter_by(email=normalize_email(email)).first()
        if user is None:
            raise NotFoundError("User not found")
        return user

    def get_by_id(self, user_id: str) -> User:
        user = db.session.get(User, user_id) if user_id else None
        if user is None:
            raise NotFoundError("User not found")
        return user

    @contextmanager
    def _mutate(self, user_id: str):
        with user_locks.hold(user_id):
            user = (
                User.query
                .filter_by(id=user_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
            if user is None:
                raise NotFoundError("User not found")
            try:
                yield user
                db.session.commit()
            except StaleDataError:
                db.session.rollback()
                raise ConflictError("Account was modified concurrently, please retry")
            except Exception:
                db.session.rollback()
                raise

    def set_two_factor(self, user_id: str, secret, method: TwoFactorMethod, enabled: bool = False,
                       require_disabled: bool = False) -> User:
        """
        Store the provisioned factor. With require_disabled the flag is
        re-checked under the row lock, so a factor confirmed by a concurrent
        request is never overwritten.
        """
        if not isinstance(method, TwoFactorMethod):
            raise ValidationError("Unknown second factor method")
        with self._mutate(user_id) as user:
            if require_disabled and user.two_factor_enabled:
                raise ValidationError(ALREADY_ENABLED)
            user.two_factor_secret = secret
            user.two_factor_method = method
            user.two_factor_enabled = enabled
        return user

    def clear_two_factor(self, user_id: str) -> User:
        with self._mutate(user_id) as user:
            user.two_factor_secret = None
            user.two_factor_method = None
            user.two_factor_enabled = False
        return user

    def mark_two_factor_confirmed(self, user_id: str, expected_secret=None) -> User:
        """
        Flip the flag for whatever was provisioned. With expected_secret the
        write only lands if that secret is still the stored one.
        """
        with self._mutate(user_id) as user:
            if user.two_factor_method is None:
                raise ValidationError("No second factor has been set up")
            if user.two_factor_method is TwoFactorMethod.APP and not user.two_factor_secret:
                raise ValidationError("No authenticator secret has been set up")
            if expected_secret is not None and user.two_factor_secret != expected_secret:
                raise ConflictError("Authenticator setup was restarted, scan the new code")
            user.two_factor_enabled = True
        return user
