from flask import Blueprint, request, jsonify, current_app, g

from routes.auth import login_response
from services import get_services
from utils.audit import log_event
from utils.auth_context import login_required
from utils.emailer import smtp_configured
from utils.errors import AuthenticationError, AuthServiceError, ExpiredError


two_factor_bp = Blueprint("two_factor", __name__, url_prefix="/auth/2fa")


def _dev_code(code: str) -> dict:
    # never on by default; only echoes when there is no mail transport at all
    if current_app.config.get("EXPOSE_DEV_OTP", False) and not smtp_configured():
        return {"code": code}
    return {}


def _send_payload(email_sent: bool, warning, code: str) -> dict:
    payload = {"emailSent": email_sent}
    if warning:
        payload["warning"] = warning
    payload.update(_dev_code(code))
    return payload


# pending login (no bearer token yet)

@two_factor_bp.post("/choose-method")
def choose_method():
    data = request.get_json(silent=True) or {}
    result = get_services().login.choose_method(data.get("pendingToken"), data.get("method"))

    log_event("LOGIN_2FA_METHOD", user_id=result.user.id, metadata={"method": result.method.value})
    payload = {"method": result.method.value}
    if result.issued_code is not None:
        if not result.email_sent:
            log_event("EMAIL_CODE_SEND_FAIL", user_id=result.user.id)
        payload.update(_send_payload(result.email_sent, result.warning, result.issued_code))
    return jsonify(payload), 200


@two_factor_bp.post("/verify")
def verify():
    data = request.get_json(silent=True) or {}
    try:
        result = get_services().login.verify_code(data.get("pendingToken"), data.get("code"))
    except (AuthenticationError, ExpiredError) as exc:
        log_event("LOGIN_2FA_FAIL", metadata={"reason": exc.message})
        raise

    log_event("LOGIN_SUCCESS", user_id=result.user.id, metadata={"second_factor": True})
    return login_response(result)


# signed-in account management

@two_factor_bp.get("/status")
@login_required
def status():
    return jsonify(get_services().guard.status(g.user)), 200


@two_factor_bp.post("/setup")
@login_required
def setup():
    services = get_services()
    provisioning = services.guard.begin_enable_totp(g.user)
    log_event("TOTP_SETUP_BEGIN", user_id=g.user.id)

    # the only response that ever carries the secret
    return jsonify(
        secret=provisioning.secret,
        manualEntryKey=provisioning.secret,
        provisioningURI=provisioning.provisioning_uri,
        qrCode=services.totp.qr_code_data_uri(provisioning.provisioning_uri),
    ), 200


@two_factor_bp.post("/confirm")
@login_required
def confirm():
    data = request.get_json(silent=True) or {}
    try:
        get_services().guard.confirm_enable_totp(g.user, data.get("code"))
    except AuthenticationError:
        log_event("TOTP_CONFIRM_FAIL", user_id=g.user.id)
        raise
    log_event("TOTP_ENABLED", user_id=g.user.id)
    return jsonify(enabled=True, method="app"), 200


@two_factor_bp.post("/email/send")
@login_required
def email_send():
    issued = get_services().guard.begin_enable_email_2fa(g.user)
    if not issued.email_sent:
        log_event("EMAIL_CODE_SEND_FAIL", user_id=g.user.id)
    return jsonify(_send_payload(issued.email_sent, issued.warning, issued.code)), 200


@two_factor_bp.post("/email/confirm")
@login_required
def email_confirm():
    data = request.get_json(silent=True) or {}
    try:
        get_services().guard.confirm_enable_email_2fa(g.user, data.get("code"), data.get("password"))
    except AuthServiceError as exc:
        log_event("EMAIL_2FA_CONFIRM_FAIL", user_id=g.user.id, metadata={"reason": exc.message})
        raise
    log_event("EMAIL_2FA_ENABLED", user_id=g.user.id)
    return jsonify(enabled=True, method="email"), 200


@two_factor_bp.post("/disable")
@login_required
def disable():
    data = request.get_json(silent=True) or {}
    try:
        get_services().guard.disable(g.user, data.get("password"))
    except AuthenticationError:
        log_event("2FA_DISABLE_FAIL", user_id=g.user.id)
        raise
    log_event("2FA_DISABLED", user_id=g.user.id)
    return jsonify(disabled=True), 200
