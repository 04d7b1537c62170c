import smtplib
from email.message import EmailMessage

from flask import current_app


def smtp_configured() -> bool:
    host = current_app.config.get("SMTP_HOST")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or current_app.config.get("SMTP_USERNAME")
    return bool(host and from_email)


def send_email(to_email: str, subject: str, body: str, html: str = None):
    """
    Single delivery attempt with a bounded timeout. Returns (sent, error);
    callers treat a failure as a warning and never retry inline.
    """
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)
    timeout = current_app.config.get("SMTP_TIMEOUT_SECONDS", 5)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(host, port, timeout=timeout) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.warning("Email delivery to %s failed: %s", to_email, exc)
        return False, str(exc)


def send_two_factor_code(to_email: str, code: str, ttl_minutes: int):
    issuer = current_app.config.get("TOTP_ISSUER", "Quantro")
    subject = f"Your {issuer} verification code"
    body = (
        f"Your verification code is: {code}\n\n"
        f"This code will expire in {ttl_minutes} minutes. "
        f"Never share this code with anyone. {issuer} will never ask for your code.\n\n"
        "If you didn't request this code, please ignore this email."
    )
    html = (
        f"<p>Your verification code is:</p>"
        f"<p style=\"font-size:32px;font-weight:bold;letter-spacing:8px;font-family:monospace\">{code}</p>"
        f"<p>This code will expire in <strong>{ttl_minutes} minutes</strong>. "
        f"Never share this code with anyone.</p>"
    )
    return send_email(to_email, subject, body, html=html)
