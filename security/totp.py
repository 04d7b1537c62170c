import base64
from dataclasses import dataclass
from io import BytesIO

import pyotp
import qrcode

CODE_DIGITS = 6
TIME_STEP = 30  # seconds


@dataclass(frozen=True)
class TotpProvisioning:
    secret: str
    provisioning_uri: str


class TOTPProvider:
    """Authenticator-app codes (RFC 6238, SHA-1, 6 digits, 30 s steps)."""

    def __init__(self, issuer: str = "Quantro", drift_window: int = 2):
        self.issuer = issuer
        self.drift_window = drift_window

    @classmethod
    def from_config(cls, config) -> "TOTPProvider":
        return cls(
            issuer=config.get("TOTP_ISSUER", "Quantro"),
            drift_window=config.get("TOTP_DRIFT_WINDOW", 2),
        )

    def generate_secret(self, account_label: str) -> TotpProvisioning:
        """
        Fresh base32 secret (32 chars = 160 bits) plus the otpauth:// URI the
        authenticator app scans.
        """
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=TIME_STEP).provisioning_uri(
            name=account_label, issuer_name=self.issuer
        )
        return TotpProvisioning(secret=secret, provisioning_uri=uri)

    def verify(self, secret: str, submitted_code, drift_window: int = None, for_time=None) -> bool:
        if not secret or not isinstance(submitted_code, str):
            return False
        code = submitted_code.strip().replace(" ", "")
        if len(code) != CODE_DIGITS or not code.isdigit():
            return False

        window = self.drift_window if drift_window is None else drift_window
        totp = pyotp.TOTP(secret, digits=CODE_DIGITS, interval=TIME_STEP)
        try:
            if for_time is None:
                return totp.verify(code, valid_window=window)
            return totp.verify(code, for_time=for_time, valid_window=window)
        except (ValueError, TypeError):
            # secret is not valid base32
            return False

    @staticmethod
    def qr_code_data_uri(provisioning_uri: str) -> str:
        """PNG of the provisioning URI as a data: URI for <img src>."""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(provisioning_uri)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = BytesIO()
        img.save(buffer, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()
