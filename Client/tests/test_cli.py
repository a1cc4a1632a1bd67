"""
Tests for the SafawiNet command line client

Argument parsing, configuration handling and command dispatch, with the
API client mocked out.
"""

import json
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import cli
from client import build_parser
from config_manager import DEFAULT_CONFIG, ConfigManager
from exceptions import SafawiNetPermissionError


def _config(tmp_path):
    config_mgr = ConfigManager(base_dir=tmp_path)
    config_mgr.load_config()
    return config_mgr


# ==================== Parser ====================

def test_parse_users_list_filters():
    """List options map onto the namespace"""
    args = build_parser().parse_args(["users", "list", "--search", "ali", "--inactive", "--page", "2"])

    assert args.command == "users"
    assert args.users_command == "list"
    assert args.search == "ali"
    assert args.active is False
    assert args.page == 2


def test_parse_active_flag_defaults_to_none():
    """Without --active/--inactive no status filter is sent"""
    args = build_parser().parse_args(["users", "list"])

    assert args.active is None


def test_parse_grant_and_global_code():
    """The 2FA code is a global option"""
    args = build_parser().parse_args(["--code", "123456", "users", "grant", "7", "audit-logs", "view_own"])

    assert args.code == "123456"
    assert (args.user_id, args.page, args.action) == (7, "audit-logs", "view_own")


def test_parse_audit_user_ids():
    """Several user IDs can be given to the audit filter"""
    args = build_parser().parse_args(["audit", "list", "--user-id", "1", "2", "--risk-level", "high"])

    assert args.user_id == [1, 2]
    assert args.risk_level == "high"


# ==================== Configuration ====================

def test_config_created_with_defaults(tmp_path):
    """A missing config.json is written with the defaults"""
    config_mgr = _config(tmp_path)

    assert config_mgr.config == DEFAULT_CONFIG
    assert json.loads((tmp_path / "config.json").read_text()) == DEFAULT_CONFIG


def test_config_merges_missing_keys(tmp_path):
    """Existing files keep their values and gain new defaults"""
    (tmp_path / "config.json").write_text(json.dumps({"server_port": 8443}))

    config_mgr = _config(tmp_path)

    assert config_mgr.get("server_port") == 8443
    assert config_mgr.get("page_size") == DEFAULT_CONFIG["page_size"]


def test_no_stored_credentials(tmp_path):
    """Without a saved username nothing is read from the credential store"""
    assert _config(tmp_path).get_credentials() is None


# ==================== Commands ====================

def _change_args(command, page, action, user_id=5):
    return SimpleNamespace(users_command=command, user_id=user_id, page=page, action=action)


def test_grant_rejected_locally(capsys):
    """Invalid combinations never reach the server"""
    api_client = MagicMock()
    api_client.get_user.return_value = {
        "id": 5, "isAdmin": False, "permissions": [{"page": "users", "actions": ["view"]}]
    }

    result = cli.cmd_users_change_permission(api_client, _change_args("grant", "users", "view_own"))

    assert result == cli.EXIT_FAILURE
    assert "Cannot select both" in capsys.readouterr().out
    api_client.update_user_permissions.assert_not_called()


def test_grant_sends_updated_list():
    """Accepted changes send the complete new list"""
    api_client = MagicMock()
    api_client.get_user.return_value = {
        "id": 5, "isAdmin": False, "permissions": [{"page": "users", "actions": ["view"]}]
    }
    api_client.update_user_permissions.return_value = {
        "username": "bob", "permissions": [{"page": "users", "actions": ["view", "edit"]}]
    }

    result = cli.cmd_users_change_permission(api_client, _change_args("grant", "users", "edit"))

    assert result == cli.EXIT_SUCCESS
    api_client.update_user_permissions.assert_called_once_with(
        5, [{"page": "users", "actions": ["view", "edit"]}]
    )


def test_revoke_view_drops_page():
    """Revoking the view action removes the page"""
    api_client = MagicMock()
    api_client.get_user.return_value = {
        "id": 5, "isAdmin": False,
        "permissions": [{"page": "users", "actions": ["view", "export"]}, {"page": "audit-logs", "actions": ["view_own"]}]
    }
    api_client.update_user_permissions.return_value = {"username": "bob", "permissions": []}

    cli.cmd_users_change_permission(api_client, _change_args("revoke", "users", "view"))

    api_client.update_user_permissions.assert_called_once_with(
        5, [{"page": "audit-logs", "actions": ["view_own"]}]
    )


def test_admin_permissions_not_editable():
    """Administrators are left alone"""
    api_client = MagicMock()
    api_client.get_user.return_value = {"id": 1, "isAdmin": True, "permissions": []}

    assert cli.cmd_users_change_permission(api_client, _change_args("grant", "users", "view", 1)) == cli.EXIT_FAILURE
    api_client.update_user_permissions.assert_not_called()


def test_users_list_shows_matched_template(capsys):
    """Roles are paired with the template they match"""
    api_client = MagicMock()
    api_client.get_users.return_value = {
        "users": [{"id": 2, "username": "bob", "fullName": "Bob Stone", "role": "Manager2", "isActive": True}],
        "pagination": {"currentPage": 1, "totalPages": 1, "totalCount": 1},
    }
    api_client.get_role_templates.return_value = {"templates": [{"name": "Manager"}], "pagination": None}
    args = SimpleNamespace(page=1, limit=10, search=None, active=None, role=None)

    assert cli.cmd_users_list(api_client, args) == cli.EXIT_SUCCESS

    output = capsys.readouterr().out
    assert "Manager2" in output
    assert "Manager " in output
    assert "Page 1 of 1 (1 total)" in output


def test_export_writes_file(tmp_path):
    """CSV output goes to the requested file"""
    api_client = MagicMock()
    api_client.export_users.return_value = b"ID,Username\n1,admin\n"
    target = tmp_path / "users.csv"

    cli.cmd_users_export(api_client, SimpleNamespace(search=None, output=str(target)))

    assert target.read_bytes() == b"ID,Username\n1,admin\n"


# ==================== Dispatch ====================

def test_run_without_credentials_is_auth_error(tmp_path):
    """Commands need stored credentials"""
    args = build_parser().parse_args(["whoami"])

    assert cli.run_cli_command(args, ConfigManager(base_dir=tmp_path)) == cli.EXIT_AUTH_ERROR


def test_run_maps_permission_error_and_closes_client(tmp_path):
    """API errors give exit code 1 and the client is closed"""
    api_client = MagicMock()
    api_client.delete_user.side_effect = SafawiNetPermissionError("Access denied. Required permission: users:delete", 403)
    args = build_parser().parse_args(["users", "delete", "9"])

    with patch.object(cli, "connect", return_value=api_client):
        result = cli.run_cli_command(args, ConfigManager(base_dir=tmp_path))

    assert result == cli.EXIT_FAILURE
    api_client.close.assert_called_once()


def test_run_missing_server_is_config_error(tmp_path):
    """An empty server URL stops before connecting"""
    (tmp_path / "config.json").write_text(json.dumps({"server_url": ""}))
    args = build_parser().parse_args(["whoami"])

    with patch.object(cli, "connect") as connect:
        result = cli.run_cli_command(args, ConfigManager(base_dir=tmp_path))

    assert result == cli.EXIT_CONFIG_ERROR
    connect.assert_not_called()


def test_run_ends_server_session(tmp_path):
    """The session opened for a command is logged out afterwards"""
    api_client = MagicMock()
    api_client.token = "token-123"
    api_client.get_security_status.return_value = {
        "accountSecurity": {"status": "secure", "failedAttempts": 0},
        "twoFactorAuth": {"status": "enabled", "backupCodesCount": 10},
        "recentSecurityEvents": 0,
        "lastLogin": None,
    }
    args = build_parser().parse_args(["security"])

    with patch.object(cli, "connect", return_value=api_client):
        assert cli.run_cli_command(args, ConfigManager(base_dir=tmp_path)) == cli.EXIT_SUCCESS

    api_client.logout.assert_called_once()
    api_client.close.assert_called_once()


def test_logout_command_clears_credentials(tmp_path, capsys):
    """logout removes the saved identifier and password"""
    (tmp_path / "config.json").write_text(json.dumps({"username": "alice"}))
    args = build_parser().parse_args(["logout"])

    with patch("config_manager.keyring") as keyring_mock:
        result = cli.run_cli_command(args, ConfigManager(base_dir=tmp_path))

    assert result == cli.EXIT_SUCCESS
    keyring_mock.delete_password.assert_called_once_with("SafawiNet", "alice")
    assert json.loads((tmp_path / "config.json").read_text())["username"] is None
    assert "Removed stored credentials for alice" in capsys.readouterr().out


def test_users_show_describes_each_action(capsys):
    """Every granted action is listed with its description"""
    api_client = MagicMock()
    api_client.get_user.return_value = {
        "id": 5, "username": "bob", "isAdmin": False,
        "permissions": [{"page": "audit-logs", "actions": ["view_own", "export"]}],
    }

    assert cli.cmd_users_show(api_client, SimpleNamespace(user_id=5)) == cli.EXIT_SUCCESS

    output = capsys.readouterr().out
    assert "View Own Logs - View only your own audit logs" in output
    assert "Export Logs - Export audit log data to CSV" in output


def test_invalid_config_values_fall_back(tmp_path):
    """Wrongly typed values are replaced by defaults"""
    (tmp_path / "config.json").write_text(json.dumps({"server_port": "eighty", "log_level": "LOUD"}))

    config_mgr = _config(tmp_path)

    assert config_mgr.get("server_port") == DEFAULT_CONFIG["server_port"]
    assert config_mgr.get("log_level") == "INFO"


def test_home_directory_from_environment(tmp_path, monkeypatch):
    """SAFAWINET_CLIENT_HOME picks the config folder"""
    monkeypatch.setenv("SAFAWINET_CLIENT_HOME", str(tmp_path))

    assert ConfigManager().config_file == tmp_path / "config.json"
