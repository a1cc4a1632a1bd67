"""
SafawiNet Client - CLI Mode Module

Implements the command-line interface for administering users, role
templates and audit logs. Uses stored credentials (or prompts), prints
results to stdout and logs to a timestamped file.

Author: SafawiNet Project
"""

import sys
import getpass
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

from config_manager import ConfigManager
from api import SafawiNetAPI
from exceptions import (
    SafawiNetAPIError,
    SafawiNetAuthError,
    SafawiNetTwoFactorRequiredError
)
from permission_utils import (
    apply_change, get_permission_description, get_permission_display_name,
    get_permission_summary, get_user_permissions
)
from role_matcher import match_template


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3


def setup_cli_logging(config_manager: ConfigManager) -> Path:
    """
    Setup logging for CLI mode with timestamped log file.

    Creates log file with format: safawinet-YYYY-MM-DD-HH-MM-SS.log
    in a "logs" subdirectory next to config.json. Console output goes to
    stderr so command output on stdout stays clean.

    Args:
        config_manager: ConfigManager instance for log settings

    Returns:
        Path to the created log file
    """
    log_level = config_manager.get("log_level", "INFO")

    timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
    log_dir = config_manager.base_dir / "logs"
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / f"safawinet-{timestamp}.log"

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stderr)
        ]
    )

    logger = logging.getLogger(__name__)
    logger.debug(f"SafawiNet CLI - Log file: {log_file}")

    return log_file


def cleanup_old_logs(config_manager: ConfigManager, current_log: Path):
    """
    Delete log files older than retention period.

    Args:
        config_manager: ConfigManager instance for retention settings
        current_log: Path to current log file (don't delete this)
    """
    logger = logging.getLogger(__name__)
    retention_days = config_manager.get("log_retention_days", 30)

    if retention_days <= 0:
        return  # Retention disabled

    cutoff_time = datetime.now().timestamp() - (retention_days * 86400)

    deleted_count = 0
    for log_file in current_log.parent.glob("safawinet-*.log"):
        if log_file == current_log:
            continue

        try:
            if log_file.stat().st_mtime < cutoff_time:
                log_file.unlink()
                deleted_count += 1
        except OSError as e:
            logger.warning(f"Failed to delete old log file {log_file}: {e}")

    if deleted_count > 0:
        logger.info(f"Deleted {deleted_count} old log file(s)")


def create_api_client(config_mgr: ConfigManager) -> SafawiNetAPI:
    return SafawiNetAPI(
        config_mgr.get("server_url"),
        config_mgr.get("server_port"),
        config_mgr.get("verify_ssl", True)
    )


def connect(config_mgr: ConfigManager, two_factor_code: Optional[str] = None) -> SafawiNetAPI:
    """
    Log in with the stored credentials.

    Args:
        config_mgr: Loaded configuration
        two_factor_code: TOTP or backup code, if the account uses 2FA

    Returns:
        Authenticated API client

    Raises:
        SafawiNetAuthError: If no credentials are stored or login fails
    """
    logger = logging.getLogger(__name__)

    credentials = config_mgr.get_credentials()
    if not credentials:
        raise SafawiNetAuthError("No stored credentials found. Run 'login --save' first.")

    username, password = credentials
    api_client = create_api_client(config_mgr)

    logger.info(f"Logging in to {api_client.base_url} as {username}")
    api_client.login(username, password, two_factor_code=two_factor_code,
                     remember_me=config_mgr.get("remember_me", False))
    return api_client


# ==================== Output Helpers ====================

def _print_table(headers, rows):
    widths = [len(header) for header in headers]
    for row in rows:
        for index, value in enumerate(row):
            widths[index] = max(widths[index], len(str(value)))

    print("  ".join(header.ljust(widths[i]) for i, header in enumerate(headers)))
    print("  ".join("-" * width for width in widths))
    for row in rows:
        print("  ".join(str(value).ljust(widths[i]) for i, value in enumerate(row)))


def _print_pagination(pagination):
    if pagination:
        print(f"\nPage {pagination['currentPage']} of {pagination['totalPages']} "
              f"({pagination['totalCount']} total)")


def _write_output(content: bytes, output: Optional[str]):
    if output:
        Path(output).write_bytes(content)
        print(f"Saved to {output}")
    else:
        sys.stdout.write(content.decode("utf-8"))


# ==================== Commands ====================

def cmd_login(config_mgr: ConfigManager, args) -> int:
    """
    Interactive login; with --save the credentials go to the OS credential store.
    """
    identifier = args.username or config_mgr.get("username") or input("Username, email or phone: ").strip()
    password = getpass.getpass("Password: ")
    api_client = create_api_client(config_mgr)

    try:
        try:
            data = api_client.login(identifier, password, two_factor_code=args.code)
        except SafawiNetTwoFactorRequiredError as e:
            if args.code:
                raise
            print(e.message)
            code = input("Authentication code (or backup code): ").strip()
            data = api_client.login(identifier, password, two_factor_code=code)

        user = data["user"]
        print(f"Logged in as {user['fullName']} ({user['username']})")
        if data.get("usedBackupCode"):
            print(f"A backup code was used; {user['backupCodesRemaining']} left")

        if args.save:
            config_mgr.store_credentials(identifier, password)
            print("Credentials saved")
        return EXIT_SUCCESS
    finally:
        api_client.close()


def cmd_logout(config_mgr: ConfigManager, args) -> int:
    """
    Forget the credentials saved with "login --save".
    """
    username = config_mgr.clear_credentials()
    if username:
        print(f"Removed stored credentials for {username}")
    else:
        print("No stored credentials")
    return EXIT_SUCCESS


def cmd_whoami(api_client: SafawiNetAPI, args) -> int:
    profile = api_client.get_profile()
    print(f"{profile['fullName']} ({profile['username']})")
    print(f"Email: {profile['email']}")
    print(f"Role: {profile['role']}{' [admin]' if profile['isAdmin'] else ''}")
    print(f"Two-factor: {'enabled' if profile['twoFactorEnabled'] else 'disabled'}")
    print(f"Permissions: {get_permission_summary(get_user_permissions(profile))}")
    return EXIT_SUCCESS


def cmd_users_list(api_client: SafawiNetAPI, args) -> int:
    filters = {
        "page": args.page,
        "limit": args.limit,
        "search": args.search,
        "isActive": args.active,
        "role": args.role,
    }
    result = api_client.get_users(filters)

    # Role labels are matched against templates for display only
    templates = api_client.get_role_templates({"status": "active", "limit": 100})["templates"]

    rows = []
    for user in result["users"]:
        template = match_template(user["role"], templates)
        rows.append([
            user["id"],
            user["username"],
            user["fullName"],
            user["role"],
            template["name"] if template else "-",
            "yes" if user["isActive"] else "no",
        ])

    _print_table(["ID", "Username", "Name", "Role", "Template", "Active"], rows)
    _print_pagination(result["pagination"])
    return EXIT_SUCCESS


def cmd_users_show(api_client: SafawiNetAPI, args) -> int:
    user = api_client.get_user(args.user_id)
    for label, key in (("ID", "id"), ("Username", "username"), ("Name", "fullName"), ("Email", "email"),
                       ("Phone", "phone"), ("Role", "role"), ("Active", "isActive"),
                       ("Created", "createdAt"), ("Last login", "lastLogin")):
        print(f"{label + ':':<12} {user.get(key) if user.get(key) is not None else '-'}")
    permissions = get_user_permissions(user)
    print(f"{'Permissions:':<12} {get_permission_summary(permissions)}")
    for entry in permissions:
        for action in entry["actions"]:
            name = get_permission_display_name(entry["page"], action)
            print(f"  {entry['page']}:{action:<9} {name} - {get_permission_description(entry['page'], action)}")
    return EXIT_SUCCESS


def cmd_users_delete(api_client: SafawiNetAPI, args) -> int:
    api_client.delete_user(args.user_id)
    print(f"Deleted user {args.user_id}")
    return EXIT_SUCCESS


def cmd_users_bulk_delete(api_client: SafawiNetAPI, args) -> int:
    result = api_client.bulk_delete_users(args.user_ids)
    print(f"Deleted {result['deletedCount']} user(s), skipped {result['skippedCount']}")
    for skipped in result["skipped"]:
        print(f"  {skipped['id']}: {skipped['reason']}")
    return EXIT_SUCCESS


def cmd_users_change_permission(api_client: SafawiNetAPI, args) -> int:
    """
    Grant or revoke one action, checked locally before anything is sent.
    """
    logger = logging.getLogger(__name__)
    user = api_client.get_user(args.user_id)
    if user["isAdmin"]:
        print("Administrators already have every permission")
        return EXIT_FAILURE

    checked = args.users_command == "grant"
    change = apply_change(user["permissions"], args.page, args.action, checked)
    if not change.accepted:
        logger.warning(f"Permission change rejected: {change.rejection}")
        print(change.rejection)
        return EXIT_FAILURE

    updated = api_client.update_user_permissions(args.user_id, change.permissions)
    print(f"{updated['username']}: {get_permission_summary(updated['permissions'])}")
    return EXIT_SUCCESS


def cmd_users_export(api_client: SafawiNetAPI, args) -> int:
    _write_output(api_client.export_users({"search": args.search}), args.output)
    return EXIT_SUCCESS


def cmd_templates_list(api_client: SafawiNetAPI, args) -> int:
    result = api_client.get_role_templates({"status": args.status, "search": args.search, "limit": args.limit})
    rows = [
        [t["id"], t["name"], "yes" if t["isDefault"] else "no", t["usageCount"], t["permissionSummary"]]
        for t in result["templates"]
    ]
    _print_table(["ID", "Name", "Default", "Used", "Permissions"], rows)
    _print_pagination(result["pagination"])
    return EXIT_SUCCESS


def _audit_filters(args):
    return {
        "cutoff": args.cutoff,
        "action": args.action,
        "riskLevel": args.risk_level,
        "userId": args.user_id,
    }


def cmd_audit_list(api_client: SafawiNetAPI, args) -> int:
    filters = _audit_filters(args)
    filters.update({"page": args.page, "limit": args.limit})
    result = api_client.get_audit_logs(filters)

    rows = [
        [log["timestamp"], log["username"] or "-", log["action"], "ok" if log["success"] else "FAILED",
         log["riskLevel"], log["ip"] or "-"]
        for log in result["logs"]
    ]
    _print_table(["Time", "User", "Action", "Result", "Risk", "IP"], rows)

    summary = result["summary"]
    print(f"\n{summary['totalCount']} events, {summary['highRiskCount']} high risk, "
          f"{summary['failedLoginsCount']} failed logins (scope: {result['scope']})")
    _print_pagination(result["pagination"])
    return EXIT_SUCCESS


def cmd_audit_export(api_client: SafawiNetAPI, args) -> int:
    _write_output(api_client.export_audit_logs(_audit_filters(args)), args.output)
    return EXIT_SUCCESS


def cmd_security(api_client: SafawiNetAPI, args) -> int:
    status = api_client.get_security_status()
    account = status["accountSecurity"]
    two_factor = status["twoFactorAuth"]
    print(f"Account: {account['status']} ({account['failedAttempts']} failed attempts)")
    print(f"Two-factor: {two_factor['status']} ({two_factor['backupCodesCount']} backup codes)")
    print(f"High-risk events (24h): {status['recentSecurityEvents']}")
    print(f"Last login: {status['lastLogin'] or '-'}")
    return EXIT_SUCCESS


COMMANDS = {
    ("whoami", None): cmd_whoami,
    ("security", None): cmd_security,
    ("users", "list"): cmd_users_list,
    ("users", "show"): cmd_users_show,
    ("users", "delete"): cmd_users_delete,
    ("users", "bulk-delete"): cmd_users_bulk_delete,
    ("users", "grant"): cmd_users_change_permission,
    ("users", "revoke"): cmd_users_change_permission,
    ("users", "export"): cmd_users_export,
    ("templates", "list"): cmd_templates_list,
    ("audit", "list"): cmd_audit_list,
    ("audit", "export"): cmd_audit_export,
}


def run_cli_command(args, config_mgr: Optional[ConfigManager] = None) -> int:
    """
    Execute a CLI command.

    Process:
    1. Load configuration and setup logging
    2. Log in with stored credentials (except for "login")
    3. Run the command
    4. Map errors to exit codes

    Args:
        args: Parsed argparse namespace (command, sub-command and options)
        config_mgr: Configuration manager (a default one is created if omitted)

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logger = None
    api_client = None

    try:
        if config_mgr is None:
            config_mgr = ConfigManager()
        config_mgr.load_config()
        log_file = setup_cli_logging(config_mgr)
        logger = logging.getLogger(__name__)
        cleanup_old_logs(config_mgr, log_file)

        if not config_mgr.get("server_url") or not config_mgr.get("server_port"):
            logger.error(f"server_url and server_port must be set in {config_mgr.config_file}")
            return EXIT_CONFIG_ERROR

        if args.command == "login":
            return cmd_login(config_mgr, args)
        if args.command == "logout":
            return cmd_logout(config_mgr, args)

        sub_command = getattr(args, f"{args.command}_command", None)
        handler = COMMANDS.get((args.command, sub_command))
        if handler is None:
            logger.error(f"Unknown command: {args.command} {sub_command or ''}".strip())
            return EXIT_FAILURE

        api_client = connect(config_mgr, getattr(args, "code", None))
        return handler(api_client, args)

    except SafawiNetAuthError as e:
        if logger:
            logger.error(f"Authentication failed: {e}")
        else:
            print(f"Authentication failed: {e}", file=sys.stderr)
        return EXIT_AUTH_ERROR

    except SafawiNetAPIError as e:
        if logger:
            logger.error(f"API Error: {e}")
            for error in (e.errors or []) if isinstance(e.errors, list) else []:
                logger.error(f"  {error}")
        else:
            print(f"API Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    except OSError as e:
        if logger:
            logger.error(f"File error: {e}")
        else:
            print(f"File error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    except KeyboardInterrupt:
        if logger:
            logger.warning("Operation cancelled by user (Ctrl+C)")
        else:
            print("\nOperation cancelled by user", file=sys.stderr)
        return EXIT_FAILURE

    except Exception as e:
        if logger:
            logger.exception(f"Unexpected error: {e}")
        else:
            print(f"Unexpected error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    finally:
        if api_client is not None:
            # Each command logs in afresh, so its server session ends here
            if api_client.token:
                try:
                    api_client.logout()
                except SafawiNetAPIError as e:
                    logging.getLogger(__name__).warning(f"Logout failed: {e}")
            api_client.close()
