"""
Tests for TOTP and backup code helpers in SafawiNet Server
"""

import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from two_factor import (
    BuildOtpauthUri, BuildQrCodeDataUri, BuildStoredBackupCodes, ConsumeBackupCode,
    CountUnusedBackupCodes, FindUnusedBackupCode, GenerateBackupCodes, GenerateCode,
    GenerateSecret, VerifyCode
)

# RFC 6238 test secret ("12345678901234567890" in base32)
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


def test_rfc6238_reference_values():
    """Codes match the RFC 6238 SHA-1 test vectors (last six digits)"""
    assert GenerateCode(RFC_SECRET, timestamp=59) == "287082"
    assert GenerateCode(RFC_SECRET, timestamp=1111111109) == "081804"
    assert GenerateCode(RFC_SECRET, timestamp=1234567890) == "005924"


def test_current_code_verifies():
    """A code generated now verifies now"""
    secret = GenerateSecret()
    code = GenerateCode(secret)

    assert VerifyCode(secret, code)


def test_window_bounds():
    """Codes inside the window verify; codes from distant steps do not"""
    secret = GenerateSecret()
    now = 1_700_000_000
    two_steps_ago = GenerateCode(secret, timestamp=now - 60)
    ten_steps_ago = GenerateCode(secret, timestamp=now - 300)

    assert VerifyCode(secret, two_steps_ago, window=2, timestamp=now)
    assert not VerifyCode(secret, two_steps_ago, window=1, timestamp=now)
    assert not VerifyCode(secret, ten_steps_ago, window=4, timestamp=now)


def test_malformed_codes_rejected():
    """Codes must be exactly six digits"""
    secret = GenerateSecret()

    assert not VerifyCode(secret, "12345")
    assert not VerifyCode(secret, "abcdef")
    assert not VerifyCode(secret, "")
    assert not VerifyCode("", "123456")


def test_backup_codes_format():
    """Ten unique upper-case hex codes of eight characters"""
    codes = GenerateBackupCodes()

    assert len(codes) == 10
    assert len(set(codes)) == 10
    for code in codes:
        assert len(code) == 8
        assert code == code.upper()
        int(code, 16)


def test_backup_codes_are_single_use():
    """A consumed backup code cannot be found again; others still work"""
    codes = GenerateBackupCodes()
    stored = BuildStoredBackupCodes(codes)

    index = FindUnusedBackupCode(stored, codes[3].lower())
    assert index == 3

    updated = ConsumeBackupCode(stored, index)
    assert FindUnusedBackupCode(updated, codes[3]) is None
    assert FindUnusedBackupCode(updated, codes[4]) == 4
    assert CountUnusedBackupCodes(updated) == 9
    # Input list left untouched
    assert CountUnusedBackupCodes(stored) == 10


def test_backup_codes_stored_hashed():
    """Plain codes never appear in the stored form"""
    codes = GenerateBackupCodes()
    stored = BuildStoredBackupCodes(codes)

    for code, entry in zip(codes, stored):
        assert code not in entry["code_hash"]
        assert entry["used"] is False


def test_otpauth_uri():
    """Provisioning URI carries secret and issuer"""
    uri = BuildOtpauthUri("ABCDEFGH", "alice@example.com")
    parsed = urlparse(uri)
    query = parse_qs(parsed.query)

    assert parsed.scheme == "otpauth"
    assert parsed.netloc == "totp"
    assert query["secret"] == ["ABCDEFGH"]
    assert query["issuer"] == ["SafawiNet"]


def test_qr_code_is_svg_data_uri():
    """QR codes are rendered as base64 SVG data URIs"""
    data_uri = BuildQrCodeDataUri("otpauth://totp/SafawiNet:alice?secret=ABCDEFGH")

    assert data_uri.startswith("data:image/svg+xml;base64,")
    assert len(data_uri) > 100
