"""
Tests for login, sessions, profile, password and two-factor endpoints of SafawiNet Server
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from two_factor import GenerateCode

USER_PASSWORD = "Us3r!Secret"


def _login_response(client, identifier, password=USER_PASSWORD, **extra):
    return client.post("/api/auth/login", json={"identifier": identifier, "password": password, **extra})


def _enable_two_factor(client, headers):
    setup = client.post("/api/auth/2fa/setup", headers=headers).json()["data"]
    response = client.post("/api/auth/2fa/enable", json={"code": GenerateCode(setup["secret"])}, headers=headers)
    assert response.status_code == 200, response.text
    return setup


# ==================== Login ====================

def test_login_by_username_email_and_phone(client, make_user):
    """Any of username, email or phone identifies the user"""
    make_user("alice", phone="+96170111222")

    for identifier in ("alice", "ALICE@example.com", "+96170111222"):
        response = _login_response(client, identifier)
        assert response.status_code == 200, identifier
        data = response.json()["data"]
        assert data["token"]
        assert data["user"]["username"] == "alice"
        assert data["usedBackupCode"] is False


def test_login_wrong_password(client, make_user):
    """Bad credentials give one generic message"""
    make_user("alice")

    assert _login_response(client, "alice", "Wrong!Pass1").json()["message"] == "Invalid credentials"
    assert _login_response(client, "nobody").json()["message"] == "Invalid credentials"


def test_account_locks_after_repeated_failures(client, make_user):
    """Five failures lock the account even for the right password"""
    make_user("alice")

    for _ in range(5):
        assert _login_response(client, "alice", "Wrong!Pass1").status_code == 401

    response = _login_response(client, "alice")
    assert response.status_code == 401
    assert response.json()["message"] == "Account is temporarily locked due to multiple failed login attempts"


def test_inactive_account_cannot_login(client, make_user):
    """Deactivated users are told to contact the administrator"""
    make_user("alice", is_active=False)

    response = _login_response(client, "alice")

    assert response.status_code == 401
    assert response.json()["message"] == "Account is deactivated. Please contact administrator."


def test_remember_me_extends_expiry(client, make_user):
    """Remember-me tokens outlive the default 24 hours"""
    make_user("alice")

    short = _login_response(client, "alice").json()["data"]["expiresIn"]
    long = _login_response(client, "alice", rememberMe=True).json()["data"]["expiresIn"]

    assert short <= 24 * 3600
    assert long > 24 * 3600


def test_invalid_token_rejected(client):
    """Garbage tokens are refused"""
    response = client.get("/api/auth/validate", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


# ==================== Sessions ====================

def test_logout_ends_session(client, login, make_user):
    """A logged out token stops working"""
    make_user("alice")
    headers = login("alice")

    assert client.get("/api/auth/validate", headers=headers).status_code == 200
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/validate", headers=headers).status_code == 401


def test_list_and_revoke_sessions(client, login, make_user):
    """Users see their sessions and can revoke another one"""
    make_user("alice")
    first = login("alice")
    second = login("alice")

    sessions = client.get("/api/auth/sessions", headers=first).json()["data"]["sessions"]
    assert len(sessions) == 2
    other = next(s for s in sessions if not s["isCurrent"])

    assert client.delete(f"/api/auth/sessions/{other['sessionId']}", headers=first).status_code == 200
    assert client.get("/api/auth/validate", headers=second).status_code == 401
    assert client.delete("/api/auth/sessions/missing", headers=first).status_code == 404


def test_session_cap_drops_oldest(client, login, make_user):
    """Only max_sessions sessions stay active"""
    make_user("alice")
    oldest = login("alice")
    for _ in range(5):
        latest = login("alice")

    assert client.get("/api/auth/validate", headers=oldest).status_code == 401
    assert client.get("/api/auth/validate", headers=latest).status_code == 200


# ==================== Profile and Password ====================

def test_update_profile(client, login, make_user):
    """Users edit their own profile; unknown preference keys are dropped"""
    make_user("alice")
    headers = login("alice")

    response = client.put(
        "/api/auth/profile",
        json={"firstName": "Alicia", "preferences": {"theme": "dark", "secret": "x"}},
        headers=headers
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["firstName"] == "Alicia"
    assert data["preferences"]["theme"] == "dark"
    assert data["preferences"]["timezone"] == "UTC"
    assert "secret" not in data["preferences"]


def test_change_password(client, login, make_user):
    """Password change checks the current password and signs out other sessions"""
    make_user("alice")
    headers = login("alice")
    other = login("alice")

    response = client.put(
        "/api/auth/change-password",
        json={"currentPassword": "Wrong!Pass1", "newPassword": "N3w!Secret"},
        headers=headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Current password is incorrect"

    response = client.put(
        "/api/auth/change-password",
        json={"currentPassword": USER_PASSWORD, "newPassword": "N3w!Secret"},
        headers=headers
    )
    assert response.status_code == 200

    assert client.get("/api/auth/validate", headers=headers).status_code == 200
    assert client.get("/api/auth/validate", headers=other).status_code == 401
    assert _login_response(client, "alice", "N3w!Secret").status_code == 200


def test_change_password_policy(client, login, make_user):
    """New passwords must satisfy the policy"""
    make_user("alice")

    response = client.put(
        "/api/auth/change-password",
        json={"currentPassword": USER_PASSWORD, "newPassword": "short"},
        headers=login("alice")
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Password does not meet security requirements"
    assert response.json()["errors"]


def test_security_status(client, login, make_user):
    """Failed attempts show as a warning"""
    make_user("alice")
    headers = login("alice")
    _login_response(client, "alice", "Wrong!Pass1")

    data = client.get("/api/auth/security-status", headers=headers).json()["data"]

    assert data["accountSecurity"]["status"] == "warning"
    assert data["accountSecurity"]["failedAttempts"] == 1
    assert data["twoFactorAuth"]["enabled"] is False


# ==================== Two-Factor ====================

def test_two_factor_login_flow(client, login, make_user):
    """With 2FA on, login needs a valid TOTP code"""
    make_user("alice")
    setup = _enable_two_factor(client, login("alice"))

    response = _login_response(client, "alice")
    assert response.status_code == 401
    assert response.json()["requiresTwoFactor"] is True

    wrong_code = str((int(GenerateCode(setup["secret"])) + 500000) % 1000000).zfill(6)
    response = _login_response(client, "alice", twoFactorCode=wrong_code)
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid two-factor authentication code"

    response = _login_response(client, "alice", twoFactorCode=GenerateCode(setup["secret"]))
    assert response.status_code == 200


def test_wrong_two_factor_codes_lock_account(client, login, make_user):
    """Guessing codes with the right password counts toward the lockout"""
    make_user("alice")
    setup = _enable_two_factor(client, login("alice"))
    wrong_code = str((int(GenerateCode(setup["secret"])) + 500000) % 1000000).zfill(6)

    for _ in range(4):
        assert _login_response(client, "alice", twoFactorCode=wrong_code).status_code == 401
    assert _login_response(client, "alice", twoFactorCode="DEADBEEF").json()["message"] == "Invalid backup code"

    response = _login_response(client, "alice", twoFactorCode=GenerateCode(setup["secret"]))
    assert response.status_code == 401
    assert response.json()["message"] == "Account is temporarily locked due to multiple failed login attempts"


def test_login_throttled_per_client(client, make_user, monkeypatch):
    """Too many login requests from one address are refused with 429"""
    from config import GetSettings

    monkeypatch.setattr(GetSettings(), "login_rate_limit", "3/minute")
    make_user("alice")

    for _ in range(3):
        assert _login_response(client, "alice", "Wrong!Pass1").status_code == 401

    response = _login_response(client, "alice")
    assert response.status_code == 429
    assert response.json()["success"] is False
    assert response.json()["message"] == "Too many login attempts. Please try again later."


def test_backup_code_login_is_single_use(client, login, make_user):
    """A backup code logs in once"""
    make_user("alice")
    setup = _enable_two_factor(client, login("alice"))
    backup_code = setup["backupCodes"][0]

    response = _login_response(client, "alice", twoFactorCode=backup_code)
    assert response.status_code == 200
    assert response.json()["data"]["usedBackupCode"] is True

    response = _login_response(client, "alice", twoFactorCode=backup_code)
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid backup code"


def test_setup_returns_qr_code_and_codes(client, login, make_user):
    """Setup hands out a secret, QR code and ten backup codes"""
    make_user("alice")

    data = client.post("/api/auth/2fa/setup", headers=login("alice")).json()["data"]

    assert data["qrCode"].startswith("data:image/svg+xml;base64,")
    assert data["otpauthUrl"].startswith("otpauth://totp/")
    assert len(data["backupCodes"]) == 10


def test_enable_rejects_bad_codes(client, login, make_user):
    """Enable refuses malformed codes and enabling before setup"""
    make_user("alice")
    headers = login("alice")

    response = client.post("/api/auth/2fa/enable", json={"code": "123456"}, headers=headers)
    assert response.status_code == 400
    assert "setup" in response.json()["message"]

    client.post("/api/auth/2fa/setup", headers=headers)
    response = client.post("/api/auth/2fa/enable", json={"code": "12ab"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Verification code must be exactly 6 digits"


def test_verify_and_regenerate_backup_codes(client, login, make_user):
    """Backup codes are consumed by verification and replaced on demand"""
    make_user("alice")
    headers = login("alice")
    setup = _enable_two_factor(client, headers)

    response = client.post("/api/auth/2fa/verify-backup-code", json={"code": setup["backupCodes"][1]}, headers=headers)
    assert response.json()["data"]["remainingCodes"] == 9

    response = client.post("/api/auth/2fa/verify-backup-code", json={"code": setup["backupCodes"][1]}, headers=headers)
    assert response.status_code == 400

    response = client.post(
        "/api/auth/2fa/regenerate-backup-codes", json={"code": GenerateCode(setup["secret"])}, headers=headers
    )
    assert response.status_code == 200
    assert client.get("/api/auth/2fa/backup-codes-count", headers=headers).json()["data"]["remainingCodes"] == 10


def test_disable_two_factor(client, login, make_user):
    """Disabling needs a valid code and clears 2FA"""
    make_user("alice")
    headers = login("alice")
    setup = _enable_two_factor(client, headers)

    response = client.post("/api/auth/2fa/disable", json={"code": GenerateCode(setup["secret"])}, headers=headers)
    assert response.status_code == 200

    assert _login_response(client, "alice").status_code == 200
