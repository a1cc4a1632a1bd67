"""
SafawiNet Server - Two-Factor Authentication Utilities

TOTP (RFC 6238) code generation and verification, backup codes and the
provisioning QR code shown during setup.
"""

import base64
import hashlib
import hmac
import io
import logging
import secrets
import struct
import time
from typing import List, Optional
from urllib.parse import quote, urlencode

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from qrcode.image.svg import SvgPathImage

logger = logging.getLogger(__name__)

ISSUER_NAME = "SafawiNet"
CODE_DIGITS = 6
PERIOD_SECONDS = 30
BACKUP_CODE_COUNT = 10

# Verification windows, in 30 second steps either side of now
ENABLE_WINDOW = 4
LOGIN_WINDOW = 4
DISABLE_WINDOW = 2


# ==================== TOTP ====================

def GenerateSecret() -> str:
    """
    Generate a base32 TOTP secret

    Returns:
        str: 32 character base32 secret without padding
    """
    return base64.b32encode(secrets.token_bytes(20)).decode("ascii").rstrip("=")


def _SecretBytes(secret: str) -> bytes:
    candidate = secret.strip().replace(" ", "").upper()
    padding = "=" * ((8 - len(candidate) % 8) % 8)
    return base64.b32decode(candidate + padding, casefold=True)


def _Hotp(key: bytes, counter: int) -> str:
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code_int = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(code_int % (10 ** CODE_DIGITS)).zfill(CODE_DIGITS)


def GenerateCode(secret: str, timestamp: Optional[float] = None) -> str:
    """
    Generate the TOTP code for a moment in time

    Args:
        secret: Base32 secret
        timestamp: Unix time (defaults to now)

    Returns:
        str: 6 digit code
    """
    now = time.time() if timestamp is None else timestamp
    return _Hotp(_SecretBytes(secret), int(now) // PERIOD_SECONDS)


def IsCodeFormatValid(code: Optional[str]) -> bool:
    """Check that a code is exactly six digits"""
    return bool(code) and len(code) == CODE_DIGITS and code.isdigit()


def VerifyCode(secret: str, code: str, window: int = 1, timestamp: Optional[float] = None) -> bool:
    """
    Verify a TOTP code

    Args:
        secret: Base32 secret
        code: Code entered by the user
        window: Number of 30 second steps accepted either side of now
        timestamp: Unix time (defaults to now)

    Returns:
        bool: True if the code matches any step in the window
    """
    if not secret or not IsCodeFormatValid(code):
        return False

    now = time.time() if timestamp is None else timestamp
    counter = int(now) // PERIOD_SECONDS
    key = _SecretBytes(secret)

    for delta in range(-window, window + 1):
        if hmac.compare_digest(_Hotp(key, counter + delta), code):
            return True
    return False


def BuildOtpauthUri(secret: str, account_name: str, issuer: str = ISSUER_NAME) -> str:
    """
    Build the otpauth:// provisioning URI understood by authenticator apps
    """
    label = quote(f"{issuer}:{account_name}")
    query = urlencode({
        "secret": secret,
        "issuer": issuer,
        "digits": CODE_DIGITS,
        "period": PERIOD_SECONDS,
    })
    return f"otpauth://totp/{label}?{query}"


def BuildQrCodeDataUri(data: str) -> str:
    """
    Render data as an SVG QR code

    Args:
        data: Text to encode (usually the otpauth URI)

    Returns:
        str: data:image/svg+xml;base64,... URI
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=10,
        border=2,
        image_factory=SvgPathImage
    )
    qr.add_data(data)
    qr.make(fit=True)

    buffer = io.BytesIO()
    qr.make_image().save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


# ==================== Backup Codes ====================

def GenerateBackupCodes(count: int = BACKUP_CODE_COUNT) -> List[str]:
    """
    Generate single-use backup codes

    Returns:
        list: Unique 8 character upper-case hex codes
    """
    codes = []
    while len(codes) < count:
        code = secrets.token_hex(4).upper()
        if code not in codes:
            codes.append(code)
    return codes


def NormalizeBackupCode(code: str) -> str:
    return "".join(ch for ch in (code or "").strip().upper() if ch.isalnum())


def HashBackupCode(code: str) -> str:
    """Hash a backup code for storage"""
    return hashlib.sha256(NormalizeBackupCode(code).encode("utf-8")).hexdigest()


def BuildStoredBackupCodes(codes: List[str]) -> List[dict]:
    """
    Convert plain backup codes into their stored form

    Returns:
        list: [{"code_hash": ..., "used": False}, ...]
    """
    return [{"code_hash": HashBackupCode(code), "used": False} for code in codes]


def FindUnusedBackupCode(stored_codes: List[dict], candidate: str) -> Optional[int]:
    """
    Find the stored entry matching a backup code

    Args:
        stored_codes: Stored backup code entries
        candidate: Code entered by the user

    Returns:
        int: Index of the matching unused entry, or None
    """
    if len(NormalizeBackupCode(candidate)) != 8:
        return None

    candidate_hash = HashBackupCode(candidate)
    for index, entry in enumerate(stored_codes or []):
        if not entry.get("used") and hmac.compare_digest(entry.get("code_hash", ""), candidate_hash):
            return index
    return None


def ConsumeBackupCode(stored_codes: List[dict], index: int) -> List[dict]:
    """
    Mark a backup code as used

    Returns:
        list: New stored code list (the input list is not modified)
    """
    updated = [dict(entry) for entry in stored_codes]
    updated[index]["used"] = True
    return updated


def CountUnusedBackupCodes(stored_codes: List[dict]) -> int:
    return sum(1 for entry in stored_codes or [] if not entry.get("used"))
