#!/usr/bin/env python3
"""
Database Management Commands for Fleet Desk

Usage:
    python database_commands.py --help
    python database_commands.py status
    python database_commands.py validate
    python database_commands.py init
    python database_commands.py create-admin --name "Admin" --phone 01700000000
"""

import os
import sys
import getpass
import argparse
import logging
from app import create_app
from models import UserRole
from services.record_store import RecordStore
from services.user_service import UserService
from timezone_utils import get_local_time
from utils.database_manager import database_manager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def setup_app_context():
    """Setup Flask application context for database operations."""
    # Set a temporary SESSION_SECRET for CLI operations if not set
    if not os.environ.get('SESSION_SECRET'):
        os.environ['SESSION_SECRET'] = 'cli_temp_secret_not_for_production'

    app = create_app()
    return app.app_context()


def cmd_status(args):
    """Display database status information."""
    with setup_app_context():
        print("=" * 60)
        print("DATABASE STATUS REPORT")
        print("=" * 60)

        conn_success, conn_error = database_manager.test_connection()
        print(f"Connection Status: {'HEALTHY' if conn_success else 'FAILED'}")
        if conn_error:
            print(f"Connection Error: {conn_error}")
            sys.exit(1)

        db_info = database_manager.get_database_info()
        print()
        print("Database Information:")
        print(f"  Engine: {db_info.get('engine_info', 'Unknown')}")
        print(f"  Version: {db_info.get('database_version', 'Unknown')}")
        print(f"  Size: {db_info.get('database_size', 'Unknown')}")
        print(f"  Tables: {db_info.get('table_count', 'Unknown')}")

        if db_info.get('table_statistics'):
            print("\nTable Statistics:")
            for table, count in db_info['table_statistics'].items():
                print(f"  {table}: {count} records")

        settings = RecordStore().get_settings()
        print(f"\nApp Name: {settings.app_name}")
        print(f"Features: {settings.to_dict()['features_enabled']}")
        print(f"\nReport Generated: {get_local_time().strftime('%Y-%m-%d %H:%M:%S')}")


def cmd_validate(args):
    """Validate database schema against the models."""
    with setup_app_context():
        print("Validating database schema...")

        is_valid, issues = database_manager.validate_schema_integrity()
        if is_valid:
            print("Database validation passed - no issues found")
        else:
            print(f"Database validation failed - {len(issues)} issues found:")
            for i, issue in enumerate(issues, 1):
                print(f"  {i}. {issue}")
            sys.exit(1)


def cmd_init(args):
    """Create missing tables and the settings row."""
    with setup_app_context():
        # create_app already ran create_all and seeded the settings row
        is_valid, issues = database_manager.validate_schema_integrity()
        if not is_valid:
            for issue in issues:
                print(f"  {issue}")
            print("Existing tables differ from the models; migrate them by hand")
            sys.exit(1)
        print(f"Database ready: {database_manager.get_database_info().get('table_count')} tables")


def cmd_create_admin(args):
    """Create a super admin account."""
    password = os.environ.get('ADMIN_INITIAL_PASSWORD') or getpass.getpass('Password: ')
    if len(password) < 6:
        print("Password must be at least 6 characters")
        sys.exit(1)

    with setup_app_context():
        success, error, user = UserService().create_user(
            {'name': args.name, 'phone': args.phone, 'email': args.email, 'password': password},
            UserRole.SUPER_ADMIN,
            None,
        )
        if not success:
            print(f"Could not create super admin: {error}")
            sys.exit(1)
        print(f"Super admin {user.name} created with id {user.id}")


def main():
    """Main command line interface."""
    parser = argparse.ArgumentParser(
        description="Database Management Commands for Fleet Desk",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('status', help='Display database status')
    subparsers.add_parser('validate', help='Validate database schema')
    subparsers.add_parser('init', help='Create tables and default settings')

    admin_parser = subparsers.add_parser('create-admin', help='Create a super admin account')
    admin_parser.add_argument('--name', required=True, help='Display name')
    admin_parser.add_argument('--phone', required=True, help='Login phone number')
    admin_parser.add_argument('--email', help='Optional login email')

    args = parser.parse_args()

    commands = {
        'status': cmd_status,
        'validate': cmd_validate,
        'init': cmd_init,
        'create-admin': cmd_create_admin,
    }
    if args.command not in commands:
        parser.print_help()
        sys.exit(1)

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"Unexpected error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
