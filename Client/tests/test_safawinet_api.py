"""
Tests for the SafawiNet API client

The HTTP session is replaced with a mock so no server is needed.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from api import SafawiNetAPI
from api.safawinet_api import _clean_params
from exceptions import (
    SafawiNetAPIError, SafawiNetAuthError, SafawiNetPermissionError,
    SafawiNetServerError, SafawiNetTwoFactorRequiredError
)


def _response(status_code=200, body=None, content_type="application/json", content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.headers = {"content-type": content_type}
    response.content = content
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def api_client():
    client = SafawiNetAPI("http://localhost", 5000)
    client.session = MagicMock()
    yield client
    client.close()


@pytest.fixture
def logged_in(api_client):
    api_client.token = "token-123"
    return api_client


def test_login_stores_token_and_sends_camelcase_payload(api_client):
    """Login keeps token, session and user; payload uses the server's field names"""
    api_client.session.request.return_value = _response(body={
        "success": True,
        "data": {"token": "abc", "expiresIn": 86400, "sessionId": "s-1", "user": {"username": "admin"}}
    })

    data = api_client.login("admin", "secret", two_factor_code="123456", remember_me=True)

    assert data["token"] == "abc"
    assert api_client.token == "abc"
    assert api_client.session_id == "s-1"
    assert api_client.user == {"username": "admin"}

    args, kwargs = api_client.session.request.call_args
    assert args == ("POST", "http://localhost:5000/api/auth/login")
    assert kwargs["json"] == {
        "identifier": "admin", "password": "secret", "rememberMe": True, "twoFactorCode": "123456"
    }
    assert "Authorization" not in kwargs["headers"]


def test_two_factor_required(api_client):
    """401 with requiresTwoFactor raises the dedicated error"""
    api_client.session.request.return_value = _response(401, {
        "success": False, "message": "Two-factor authentication code required", "requiresTwoFactor": True
    })

    with pytest.raises(SafawiNetTwoFactorRequiredError) as exc_info:
        api_client.login("admin", "secret")

    assert exc_info.value.message == "Two-factor authentication code required"
    assert isinstance(exc_info.value, SafawiNetAuthError)
    assert api_client.token is None


def test_unauthorized_clears_token(logged_in):
    """A rejected token is forgotten"""
    logged_in.session.request.return_value = _response(401, {"success": False, "message": "Invalid or expired token"})

    with pytest.raises(SafawiNetAuthError) as exc_info:
        logged_in.get_profile()

    assert exc_info.value.status_code == 401
    assert logged_in.token is None


def test_forbidden_maps_to_permission_error(logged_in):
    """403 responses keep the server message"""
    logged_in.session.request.return_value = _response(403, {
        "success": False, "message": "Access denied. Required permission: users:add"
    })

    with pytest.raises(SafawiNetPermissionError) as exc_info:
        logged_in.create_user({"username": "x"})

    assert "users:add" in str(exc_info.value)
    assert logged_in.token == "token-123"


def test_validation_errors_are_kept(logged_in):
    """400 responses carry the field errors"""
    logged_in.session.request.return_value = _response(400, {
        "success": False, "message": "Validation failed", "errors": [{"field": "email", "message": "Invalid email"}]
    })

    with pytest.raises(SafawiNetServerError) as exc_info:
        logged_in.create_user({"username": "x"})

    assert exc_info.value.status_code == 400
    assert exc_info.value.errors[0]["field"] == "email"


def test_server_error_without_json(logged_in):
    """Non-JSON error bodies fall back to a generic message"""
    logged_in.session.request.return_value = _response(502, body=None)

    with pytest.raises(SafawiNetServerError) as exc_info:
        logged_in.get_users()

    assert exc_info.value.message == "Request failed with status 502"


def test_connection_error(logged_in):
    """Network failures become server errors"""
    logged_in.session.request.side_effect = requests.exceptions.ConnectionError("refused")

    with pytest.raises(SafawiNetServerError) as exc_info:
        logged_in.get_users()

    assert "Cannot connect" in exc_info.value.message


def test_authenticated_call_without_login(api_client):
    """Authenticated calls need a token before anything is sent"""
    with pytest.raises(SafawiNetAuthError):
        api_client.get_users()

    api_client.session.request.assert_not_called()


def test_get_users_sends_bearer_and_clean_filters(logged_in):
    """Filters are cleaned and the token is attached"""
    logged_in.session.request.return_value = _response(body={
        "success": True, "data": {"users": [], "pagination": {"total": 0}}
    })

    data = logged_in.get_users({"page": 2, "search": "", "isActive": False, "role": None})

    assert data == {"users": [], "pagination": {"total": 0}}
    _, kwargs = logged_in.session.request.call_args
    assert kwargs["headers"]["Authorization"] == "Bearer token-123"
    assert kwargs["params"] == {"page": 2, "isActive": "false"}
    assert kwargs["timeout"] == 30


def test_bulk_delete_payload(logged_in):
    """Bulk delete sends the IDs in the body"""
    logged_in.session.request.return_value = _response(body={
        "success": True, "data": {"deletedCount": 2, "skippedCount": 0, "skipped": []}
    })

    result = logged_in.bulk_delete_users((3, 4))

    args, kwargs = logged_in.session.request.call_args
    assert args[0] == "DELETE"
    assert args[1].endswith("/api/users/bulk")
    assert kwargs["json"] == {"userIds": [3, 4]}
    assert result["deletedCount"] == 2


def test_csv_export_returns_bytes(logged_in):
    """CSV downloads are returned raw"""
    logged_in.session.request.return_value = _response(
        body=None, content_type="text/csv; charset=utf-8", content=b"ID,Username\n1,admin\n"
    )

    data = logged_in.export_users({"search": "adm"})

    assert data.startswith(b"ID,Username")


def test_role_templates_keep_pagination(logged_in):
    """Template listing returns templates with the top level pagination"""
    logged_in.session.request.return_value = _response(body={
        "success": True, "data": [{"id": 1, "name": "Viewer"}], "pagination": {"page": 1, "total": 1}
    })

    result = logged_in.get_role_templates({"status": "active"})

    assert result["templates"][0]["name"] == "Viewer"
    assert result["pagination"]["total"] == 1


def test_health_check(api_client):
    """Health check reports False instead of raising"""
    api_client.session.request.return_value = _response(body={"status": "healthy"})
    assert api_client.health_check() is True

    api_client.session.request.side_effect = requests.exceptions.Timeout()
    assert api_client.health_check() is False


def test_clean_params_joins_lists():
    """Lists are comma separated"""
    assert _clean_params({"userId": [1, 2], "success": True}) == {"userId": "1,2", "success": "true"}
    assert _clean_params(None) == {}


def test_error_hierarchy():
    """Every client error derives from the base API error"""
    for error_class in (SafawiNetAuthError, SafawiNetPermissionError, SafawiNetServerError,
                        SafawiNetTwoFactorRequiredError):
        assert issubclass(error_class, SafawiNetAPIError)
