from models import db
from models.user import User

ALICE_EMAIL = "alice@example.com"
ALICE_PASSWORD = "correctpassword1"


def reload_user(user_id) -> User:
    db.session.expire_all()
    return db.session.get(User, user_id)


def auth_header(token) -> dict:
    return {"Authorization": f"Bearer {token}"}
