from .db import db
from .enums import TwoFactorMethod, LoginState
from .user import User
from .audit_log import AuditLog
from .session import Session
from .throttle import Throttle
from .email_code import EmailCode
from .login_challenge import LoginChallenge
