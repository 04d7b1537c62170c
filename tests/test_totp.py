import base64
from urllib.parse import unquote

import pyotp
import pytest

from security.totp import TOTPProvider

SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
# middle of a 30 second step
NOW = 1_700_000_000 - (1_700_000_000 % 30) + 15


@pytest.fixture
def provider():
    return TOTPProvider(issuer="Quantro", drift_window=2)


class TestGenerateSecret:
    def test_secret_is_base32_with_160_bits(self, provider):
        provisioning = provider.generate_secret("alice@example.com")

        assert len(provisioning.secret) == 32
        assert len(base64.b32decode(provisioning.secret)) >= 20

    def test_secrets_are_fresh(self, provider):
        first = provider.generate_secret("alice@example.com")
        second = provider.generate_secret("alice@example.com")

        assert first.secret != second.secret

    def test_provisioning_uri_embeds_label_and_issuer(self, provider):
        provisioning = provider.generate_secret("alice@example.com")
        uri = unquote(provisioning.provisioning_uri)

        assert uri.startswith("otpauth://totp/")
        assert "alice@example.com" in uri
        assert "issuer=Quantro" in uri
        assert provisioning.secret in uri

    def test_qr_code_is_png_data_uri(self, provider):
        provisioning = provider.generate_secret("alice@example.com")
        data_uri = provider.qr_code_data_uri(provisioning.provisioning_uri)

        assert data_uri.startswith("data:image/png;base64,")
        png = base64.b64decode(data_uri.split(",", 1)[1])
        assert png[:8] == b"\x89PNG\r\n\x1a\n"


class TestVerify:
    def test_accepts_current_code(self, provider):
        code = pyotp.TOTP(SECRET).now()
        assert provider.verify(SECRET, code) is True

    @pytest.mark.parametrize("steps", [-2, -1, 0, 1, 2])
    def test_accepts_codes_inside_drift_window(self, provider, steps):
        code = pyotp.TOTP(SECRET).at(NOW + steps * 30)
        assert provider.verify(SECRET, code, for_time=NOW) is True

    @pytest.mark.parametrize("steps", [-4, -3, 3, 4])
    def test_rejects_codes_outside_drift_window(self, provider, steps):
        code = pyotp.TOTP(SECRET).at(NOW + steps * 30)
        assert provider.verify(SECRET, code, for_time=NOW) is False

    def test_drift_window_can_be_narrowed_per_call(self, provider):
        code = pyotp.TOTP(SECRET).at(NOW - 30)
        assert provider.verify(SECRET, code, drift_window=0, for_time=NOW) is False

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "", None, 123456])
    def test_rejects_malformed_codes(self, provider, code):
        assert provider.verify(SECRET, code, for_time=NOW) is False

    def test_tolerates_spaces_in_code(self, provider):
        code = pyotp.TOTP(SECRET).at(NOW)
        assert provider.verify(SECRET, f" {code[:3]} {code[3:]} ", for_time=NOW) is True

    def test_rejects_code_for_another_secret(self, provider):
        other = pyotp.random_base32()
        code = pyotp.TOTP(other).at(NOW)
        # equal codes across secrets are possible but vanishingly rare
        if code == pyotp.TOTP(SECRET).at(NOW):
            pytest.skip("code collision")
        assert provider.verify(SECRET, code, drift_window=0, for_time=NOW) is False

    def test_invalid_secret_is_rejected_not_raised(self, provider):
        assert provider.verify("not base32 !!", "123456") is False
        assert provider.verify(None, "123456") is False
