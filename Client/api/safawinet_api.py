"""
SafawiNet Client - API Communication Module

Handles all communication with the SafawiNet server via REST API.
Manages authentication, JWT tokens, and API requests for users, role
templates, two-factor authentication and audit logs.

Author: SafawiNet Project
"""

import json
import logging
import requests
from typing import Optional, Dict, Any, List

from exceptions import (
    SafawiNetAPIError,
    SafawiNetAuthError,
    SafawiNetTwoFactorRequiredError,
    SafawiNetPermissionError,
    SafawiNetServerError
)

# Configure logging
logger = logging.getLogger(__name__)


def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop empty filters and send booleans the way the server parses them."""
    cleaned = {}
    for key, value in (params or {}).items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            value = ",".join(str(item) for item in value)
        cleaned[key] = value
    return cleaned


class SafawiNetAPI:
    """
    API client for communicating with SafawiNet server.

    Responsibilities:
    - Authenticate with server (login, optionally with a 2FA code)
    - Store and manage JWT token
    - Make authenticated API requests
    - Translate error responses into the SafawiNet exception hierarchy
    """

    def __init__(self, server_url: str, server_port: int, verify_ssl: bool = True):
        """
        Initialize API client.

        Args:
            server_url: Base URL of server (e.g., "https://admin.safawinet.local")
            server_port: Server port number (e.g., 5000)
            verify_ssl: Whether to verify SSL certificates
        """
        self.base_url = f"{server_url}:{server_port}"
        self.verify_ssl = verify_ssl
        self.token: Optional[str] = None
        self.token_expires_in: Optional[int] = None
        self.session_id: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None
        # Use session for connection pooling to avoid TCP handshake overhead on each request
        self.session = requests.Session()
        logger.debug(f"Initialized API client for {self.base_url} (SSL verification: {self.verify_ssl})")

    def close(self):
        """
        Close the session and release resources.

        Should be called when done using the API client.
        """
        if hasattr(self, 'session') and self.session:
            self.session.close()
            logger.debug("API client session closed")

    def __del__(self):
        """Cleanup on deletion."""
        self.close()

    # ==================== Error Handling ====================

    def _raise_for_error(self, response: requests.Response):
        """
        Raise the matching exception for an error response.

        The server answers {"success": false, "message": ..., "errors"?: ...};
        its message is surfaced, otherwise a generic fallback.

        Raises:
            SafawiNetTwoFactorRequiredError: 401 with requiresTwoFactor
            SafawiNetAuthError: Other 401 responses
            SafawiNetPermissionError: 403 responses
            SafawiNetServerError: Any other 4xx/5xx response
        """
        status_code = response.status_code
        error_data: Dict[str, Any] = {}
        try:
            parsed = response.json()
            if isinstance(parsed, dict):
                error_data = parsed
        except ValueError:
            pass

        message = error_data.get("message") or f"Request failed with status {status_code}"
        errors = error_data.get("errors")

        if status_code == 401:
            if error_data.get("requiresTwoFactor"):
                logger.info(f"Two-factor authentication required: {message}")
                raise SafawiNetTwoFactorRequiredError(message, status_code, errors)
            logger.warning(f"Authentication failed: {message}")
            raise SafawiNetAuthError(message, status_code, errors)

        if status_code == 403:
            logger.warning(f"Permission denied: {message}")
            raise SafawiNetPermissionError(message, status_code, errors)

        if status_code >= 500:
            logger.error(f"Server error {status_code}: {message}")
        else:
            logger.error(f"Request failed with status {status_code}: {message}")
        raise SafawiNetServerError(message, status_code, errors)

    def _make_request(self, method: str, endpoint: str, authenticated: bool = True, **kwargs) -> Any:
        """
        Make an API request.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (e.g., "/api/users")
            authenticated: Send the bearer token (required unless logging in)
            **kwargs: Additional arguments for request

        Returns:
            Response data (parsed JSON or raw bytes for CSV downloads)

        Raises:
            SafawiNetAuthError: If not logged in or the token is rejected
            SafawiNetServerError: If server error occurs
        """
        headers = kwargs.pop("headers", {})
        if authenticated:
            if not self.token:
                logger.error("Attempted API request without authentication")
                raise SafawiNetAuthError("Not authenticated - call login() first")
            headers["Authorization"] = f"Bearer {self.token}"

        # Build full URL
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"API request: {method} {endpoint}")

        # Add verify_ssl and timeout if not specified
        if "verify" not in kwargs:
            kwargs["verify"] = self.verify_ssl
        if "timeout" not in kwargs:
            kwargs["timeout"] = 30

        try:
            # Make request using session for connection pooling
            response = self.session.request(method, url, headers=headers, **kwargs)
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Cannot connect to server at {self.base_url}: {e}")
            raise SafawiNetServerError(f"Cannot connect to server at {self.base_url}")
        except requests.exceptions.Timeout:
            logger.error("Request timed out")
            raise SafawiNetServerError("Request timed out")
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error: {e}")
            raise SafawiNetServerError(f"Request error: {str(e)}")

        if response.status_code >= 400:
            if response.status_code == 401 and authenticated:
                # Token expired, revoked or invalid
                self.token = None
            self._raise_for_error(response)

        content_type = response.headers.get("content-type", "")
        if "text/csv" in content_type:
            return response.content

        # Try to parse JSON response
        try:
            return response.json()
        except json.JSONDecodeError:
            # Return raw content if not JSON
            return response.content

    # ==================== Authentication ====================

    def login(self, identifier: str, password: str, two_factor_code: Optional[str] = None,
              remember_me: bool = False) -> Dict[str, Any]:
        """
        Authenticate with server and receive JWT token.

        Args:
            identifier: Username, email or phone number
            password: User's password
            two_factor_code: TOTP or backup code when 2FA is enabled
            remember_me: Request a long-lived token

        Returns:
            Login data (token, expiresAt, sessionId, user)

        Raises:
            SafawiNetTwoFactorRequiredError: If a (valid) 2FA code is needed
            SafawiNetAuthError: If authentication fails
            SafawiNetServerError: If server error occurs
        """
        logger.info(f"Attempting login for user: {identifier}")
        payload = {
            "identifier": identifier,
            "password": password,
            "rememberMe": remember_me
        }
        if two_factor_code:
            payload["twoFactorCode"] = two_factor_code

        response = self._make_request("POST", "/api/auth/login", authenticated=False, json=payload, timeout=10)
        data = response.get("data", {})

        self.token = data.get("token")
        self.token_expires_in = data.get("expiresIn")
        self.session_id = data.get("sessionId")
        self.user = data.get("user")

        if data.get("usedBackupCode"):
            logger.warning("Logged in with a backup code - that code cannot be used again")
        logger.info(f"Login successful for user: {identifier}")
        return data

    def logout(self) -> bool:
        """
        End the current session on the server.

        Returns:
            True if the server confirmed the logout
        """
        response = self._make_request("POST", "/api/auth/logout")
        self.token = None
        self.session_id = None
        self.user = None
        return bool(response.get("success"))

    def validate_token(self) -> Dict[str, Any]:
        """Return the authenticated user if the token is still valid."""
        return self._make_request("GET", "/api/auth/validate")["data"]["user"]

    def change_password(self, current_password: str, new_password: str) -> bool:
        """
        Change user's password on server.

        Every other session of the user is signed out by the server.

        Args:
            current_password: User's current password
            new_password: New password to set

        Returns:
            True if password changed successfully

        Raises:
            SafawiNetAuthError: If not logged in
            SafawiNetServerError: If the current password is wrong or the new one is rejected
        """
        payload = {
            "currentPassword": current_password,
            "newPassword": new_password
        }
        response = self._make_request("PUT", "/api/auth/change-password", json=payload)
        logger.info("Password changed successfully")
        return bool(response.get("success"))

    def get_profile(self) -> Dict[str, Any]:
        return self._make_request("GET", "/api/auth/profile")["data"]

    def update_profile(self, profile_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update the caller's profile.

        Args:
            profile_data: Any of firstName, lastName, username, email, phone, preferences

        Returns:
            Updated profile
        """
        return self._make_request("PUT", "/api/auth/profile", json=profile_data)["data"]

    def get_sessions(self) -> Dict[str, Any]:
        """List active sessions ({sessions, maxSessions})."""
        return self._make_request("GET", "/api/auth/sessions")["data"]

    def revoke_session(self, session_id: str) -> bool:
        response = self._make_request("DELETE", f"/api/auth/sessions/{session_id}")
        return bool(response.get("success"))

    def get_security_status(self) -> Dict[str, Any]:
        return self._make_request("GET", "/api/auth/security-status")["data"]

    # ==================== Two-Factor Authentication ====================

    def setup_two_factor(self) -> Dict[str, Any]:
        """
        Start two-factor enrollment.

        Returns:
            secret, otpauthUrl, qrCode (SVG data URI) and backupCodes
        """
        return self._make_request("POST", "/api/auth/2fa/setup")["data"]

    def enable_two_factor(self, code: str) -> Dict[str, Any]:
        return self._make_request("POST", "/api/auth/2fa/enable", json={"code": code}).get("data", {})

    def disable_two_factor(self, code: str) -> bool:
        response = self._make_request("POST", "/api/auth/2fa/disable", json={"code": code})
        return bool(response.get("success"))

    def verify_backup_code(self, code: str) -> int:
        """
        Consume a backup code.

        Returns:
            Number of unused backup codes left
        """
        response = self._make_request("POST", "/api/auth/2fa/verify-backup-code", json={"code": code})
        return response["data"]["remainingCodes"]

    def regenerate_backup_codes(self, code: str) -> List[str]:
        response = self._make_request("POST", "/api/auth/2fa/regenerate-backup-codes", json={"code": code})
        return response["data"]["backupCodes"]

    def get_backup_codes_count(self) -> int:
        return self._make_request("GET", "/api/auth/2fa/backup-codes-count")["data"]["remainingCodes"]

    # ==================== Users ====================

    def get_users(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        List users visible to the caller.

        Args:
            filters: page, limit, search, isActive, role, createdBy, sortBy, sortOrder

        Returns:
            {"users": [...], "pagination": {...}}
        """
        return self._make_request("GET", "/api/users", params=_clean_params(filters))["data"]

    def get_user(self, user_id: int) -> Dict[str, Any]:
        return self._make_request("GET", f"/api/users/{user_id}")["data"]

    def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a user.

        Args:
            user_data: username, email, firstName, lastName, password and either
                       roleTemplateId, isAdmin or permissions

        Returns:
            The created user
        """
        user = self._make_request("POST", "/api/users", json=user_data)["data"]
        logger.info(f"Created user '{user.get('username')}'")
        return user

    def update_user(self, user_id: int, user_data: Dict[str, Any]) -> Dict[str, Any]:
        user = self._make_request("PUT", f"/api/users/{user_id}", json=user_data)["data"]
        logger.info(f"Updated user {user_id}")
        return user

    def delete_user(self, user_id: int) -> bool:
        response = self._make_request("DELETE", f"/api/users/{user_id}")
        logger.info(f"Deleted user {user_id}")
        return bool(response.get("success"))

    def bulk_delete_users(self, user_ids: List[int]) -> Dict[str, Any]:
        """
        Delete several users.

        Returns:
            {"deletedCount", "skippedCount", "skipped": [{"id", "reason"}]}
        """
        return self._make_request("DELETE", "/api/users/bulk", json={"userIds": list(user_ids)})["data"]

    def update_user_permissions(self, user_id: int, permissions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Replace a user's permission list.

        Args:
            user_id: User to change
            permissions: [{"page": ..., "actions": [...]}]

        Returns:
            The updated user
        """
        payload = {"permissions": permissions}
        return self._make_request("PUT", f"/api/users/{user_id}/permissions", json=payload)["data"]

    def export_users(self, filters: Optional[Dict[str, Any]] = None) -> bytes:
        """Download visible users as CSV."""
        return self._make_request("GET", "/api/users/export", params=_clean_params(filters), timeout=60)

    def get_available_permissions(self) -> List[Dict[str, Any]]:
        return self._make_request("GET", "/api/users/permissions/available")["data"]

    # ==================== Role Templates ====================

    def get_role_templates(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        List role templates.

        Args:
            filters: page, limit, status, search, sortBy, sortOrder

        Returns:
            {"templates": [...], "pagination": {...}}
        """
        response = self._make_request("GET", "/api/role-templates", params=_clean_params(filters))
        return {"templates": response["data"], "pagination": response.get("pagination")}

    def get_role_template(self, template_id: int) -> Dict[str, Any]:
        return self._make_request("GET", f"/api/role-templates/{template_id}")["data"]

    def get_templates_for_user_creation(self, page: int = 1, limit: int = 9,
                                        search: Optional[str] = None) -> Dict[str, Any]:
        params = _clean_params({"page": page, "limit": limit, "search": search})
        response = self._make_request("GET", "/api/role-templates/active/for-user-creation", params=params)
        return {"templates": response["data"], "pagination": response.get("pagination")}

    def create_role_template(self, template_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a role template.

        Returns:
            The full response; when another active template already has the
            same permissions it carries isDuplicate and existingTemplate and
            nothing is created
        """
        response = self._make_request("POST", "/api/role-templates", json=template_data)
        if response.get("isDuplicate"):
            logger.info(f"Template not created: {response.get('message')}")
        return response

    def update_role_template(self, template_id: int, template_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._make_request("PUT", f"/api/role-templates/{template_id}", json=template_data)

    def delete_role_template(self, template_id: int) -> bool:
        response = self._make_request("DELETE", f"/api/role-templates/{template_id}")
        return bool(response.get("success"))

    def increment_template_usage(self, template_id: int) -> Dict[str, Any]:
        return self._make_request("POST", f"/api/role-templates/{template_id}/increment-usage")["data"]

    # ==================== Audit Logs ====================

    def get_audit_logs(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        List audit events visible to the caller.

        Args:
            filters: page, limit, cutoff, action, riskLevel, success, userId
                     (a list of IDs is sent comma separated)

        Returns:
            {"logs", "pagination", "summary", "scope"}
        """
        return self._make_request("GET", "/api/auth/audit-logs", params=_clean_params(filters))["data"]

    def get_audit_log_users(self) -> List[Dict[str, Any]]:
        return self._make_request("GET", "/api/auth/audit-logs/users")["data"]

    def export_audit_logs(self, filters: Optional[Dict[str, Any]] = None) -> bytes:
        """Download visible audit events as CSV."""
        return self._make_request("GET", "/api/auth/audit-logs/export", params=_clean_params(filters), timeout=60)

    # ==================== Status ====================

    def health_check(self) -> bool:
        """
        Check that the server is reachable (no authentication needed).

        Returns:
            True if the server reports healthy
        """
        try:
            response = self._make_request("GET", "/health", authenticated=False, timeout=5)
            return response.get("status") == "healthy"
        except SafawiNetAPIError as e:
            logger.warning(f"Health check failed: {e}")
            return False
