"""
SafawiNet Client - Main Entry Point

This is the main entry point for the SafawiNet command line client.

Author: SafawiNet Project
"""

import sys
import argparse


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Commands:
    - login / logout / whoami / security
    - users list|show|delete|bulk-delete|grant|revoke|export
    - templates list
    - audit list|export
    """
    parser = argparse.ArgumentParser(
        description='SafawiNet - User Management Client',
        epilog='Run "login --save" once to store credentials for later commands'
    )
    parser.add_argument('--code', help='Two-factor authentication code (or backup code)')

    commands = parser.add_subparsers(dest='command', required=True)

    login_parser = commands.add_parser('login', help='Log in and optionally store credentials')
    login_parser.add_argument('--username', help='Username, email or phone number')
    login_parser.add_argument('--save', action='store_true', help='Store credentials in the OS credential store')

    commands.add_parser('logout', help='Remove stored credentials')
    commands.add_parser('whoami', help='Show the logged in user and permissions')
    commands.add_parser('security', help='Show account security status')

    # Users
    users_parser = commands.add_parser('users', help='Manage users')
    users_commands = users_parser.add_subparsers(dest='users_command', required=True)

    list_parser = users_commands.add_parser('list', help='List users')
    list_parser.add_argument('--search')
    list_parser.add_argument('--role')
    list_parser.add_argument('--page', type=int, default=1)
    list_parser.add_argument('--limit', type=int, default=10)
    list_parser.add_argument('--active', dest='active', action='store_true', default=None)
    list_parser.add_argument('--inactive', dest='active', action='store_false', default=None)

    show_parser = users_commands.add_parser('show', help='Show one user')
    show_parser.add_argument('user_id', type=int)

    delete_parser = users_commands.add_parser('delete', help='Delete a user')
    delete_parser.add_argument('user_id', type=int)

    bulk_parser = users_commands.add_parser('bulk-delete', help='Delete several users')
    bulk_parser.add_argument('user_ids', type=int, nargs='+')

    for name, help_text in (('grant', 'Grant a permission'), ('revoke', 'Revoke a permission')):
        change_parser = users_commands.add_parser(name, help=help_text)
        change_parser.add_argument('user_id', type=int)
        change_parser.add_argument('page', help='Page, e.g. users or audit-logs')
        change_parser.add_argument('action', help='Action, e.g. view, view_own, add, edit, delete, export')

    export_parser = users_commands.add_parser('export', help='Export users as CSV')
    export_parser.add_argument('--search')
    export_parser.add_argument('--output', '-o', help='File to write (stdout if omitted)')

    # Role templates
    templates_parser = commands.add_parser('templates', help='Browse role templates')
    templates_commands = templates_parser.add_subparsers(dest='templates_command', required=True)

    templates_list = templates_commands.add_parser('list', help='List role templates')
    templates_list.add_argument('--status', choices=['all', 'active', 'inactive', 'default'], default='all')
    templates_list.add_argument('--search')
    templates_list.add_argument('--limit', type=int, default=20)

    # Audit logs
    audit_parser = commands.add_parser('audit', help='Review audit logs')
    audit_commands = audit_parser.add_subparsers(dest='audit_command', required=True)

    for name in ('list', 'export'):
        audit_sub = audit_commands.add_parser(name, help=f'{name.capitalize()} audit events')
        audit_sub.add_argument('--cutoff', help='ISO date/time; older events are excluded (default: 24h ago)')
        audit_sub.add_argument('--action')
        audit_sub.add_argument('--risk-level', choices=['low', 'medium', 'high', 'critical'])
        audit_sub.add_argument('--user-id', type=int, nargs='+', help='Only these users (full viewers only)')
        if name == 'list':
            audit_sub.add_argument('--page', type=int, default=1)
            audit_sub.add_argument('--limit', type=int, default=25)
        else:
            audit_sub.add_argument('--output', '-o', help='File to write (stdout if omitted)')

    return parser


def main():
    """
    Main entry point for SafawiNet client.
    """
    args = build_parser().parse_args()

    from cli import run_cli_command
    return run_cli_command(args)


if __name__ == '__main__':
    sys.exit(main())
