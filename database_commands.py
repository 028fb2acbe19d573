#!/usr/bin/env python3
"""
Operations Commands for the Fleet Hiring Service

Maintenance commands run against the configured database:
- Table and identity-outbox status
- Draining undelivered identity updates
- Expiring overdue job requests
- Issuing development tokens

Usage:
    python database_commands.py --help
    python database_commands.py status
    python database_commands.py drain-outbox --limit 200
    python database_commands.py requeue-failed
    python database_commands.py expire-requests
    python database_commands.py issue-token driver-1 driver
"""

import os
import sys
import argparse
import logging
from datetime import timedelta
from app import create_app, db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def configured_secret():
    return os.environ.get('JWT_SECRET_KEY') or os.environ.get('SESSION_SECRET')

def setup_app():
    """Create an application for CLI operations without the worker thread."""
    # Maintenance commands never sign tokens, so a throwaway secret is enough for them
    if not configured_secret():
        os.environ['JWT_SECRET_KEY'] = 'cli_temp_secret_not_for_production'

    return create_app({'ENABLE_BACKGROUND_TASKS': False, 'ERROR_LOG_FILE': ''})

def cmd_status(args):
    """Display table counts and the identity outbox backlog."""
    from models import JobRequest, Employment, DriverRating, IdentitySyncOutbox, AuditLog
    from services import get_services

    app = setup_app()
    with app.app_context():
        print("=" * 60)
        print("HIRING SERVICE STATUS")
        print("=" * 60)

        print("Table Statistics:")
        for model in (JobRequest, Employment, DriverRating, IdentitySyncOutbox, AuditLog):
            print(f"  {model.__tablename__}: {db.session.query(model).count()} records")

        print()
        print("Identity Outbox:")
        backlog = get_services(app).identity_sync.backlog()
        for status, count in backlog.items():
            print(f"  {status}: {count}")

        if backlog.get('FAILED'):
            print("\nParked updates need attention: run 'requeue-failed' once the identity service is healthy")

def cmd_drain_outbox(args):
    """Deliver due identity updates."""
    from services import get_services

    app = setup_app()
    with app.app_context():
        stats = get_services(app).identity_sync.drain_pending(limit=args.limit)
        print(f"Sent: {stats['sent']}  Retrying: {stats['retrying']}  "
              f"Failed: {stats['failed']}  Deferred: {stats['deferred']}")
        if stats['failed']:
            sys.exit(2)

def cmd_requeue_failed(args):
    """Return parked identity updates to the queue."""
    from services import get_services

    app = setup_app()
    with app.app_context():
        count = get_services(app).identity_sync.requeue_failed(args.ids or None)
        print(f"Requeued {count} identity updates")

def cmd_expire_requests(args):
    """Expire open job requests past their expiry date."""
    from services import get_services

    app = setup_app()
    with app.app_context():
        count = get_services(app).job_requests.expire_overdue()
        print(f"Expired {count} job requests")

def cmd_issue_token(args):
    """Print a signed token for local development."""
    from auth import issue_token
    from services.caller import ROLE_CLAIMS

    if args.role.lower() not in ROLE_CLAIMS:
        print(f"Unknown role: {args.role}. Choose from {', '.join(sorted(ROLE_CLAIMS))}")
        sys.exit(1)

    # The identity service only accepts tokens signed with the shared secret
    if not configured_secret():
        print("JWT_SECRET_KEY (or SESSION_SECRET) must be set to issue tokens")
        sys.exit(1)

    app = setup_app()
    token = issue_token(args.user_id, args.role.lower(), app.config['JWT_SECRET_KEY'],
                        expires_in=timedelta(hours=args.hours))
    print(token)

def main():
    parser = argparse.ArgumentParser(
        description='Operations commands for the fleet hiring service',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Status command
    subparsers.add_parser('status', help='Display table counts and outbox backlog')

    # Outbox commands
    drain_parser = subparsers.add_parser('drain-outbox', help='Deliver pending identity updates')
    drain_parser.add_argument('--limit', type=int, default=100, help='Maximum rows to process')

    requeue_parser = subparsers.add_parser('requeue-failed', help='Requeue parked identity updates')
    requeue_parser.add_argument('ids', nargs='*', type=int, help='Outbox row ids (default: all failed)')

    # Expiry command
    subparsers.add_parser('expire-requests', help='Expire overdue job requests')

    # Token command
    token_parser = subparsers.add_parser('issue-token', help='Issue a development token')
    token_parser.add_argument('user_id', help='User id to embed')
    token_parser.add_argument('role', help='Role claim: driver, fleetmanager, company or admin')
    token_parser.add_argument('--hours', type=int, default=24, help='Token lifetime in hours')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        'status': cmd_status,
        'drain-outbox': cmd_drain_outbox,
        'requeue-failed': cmd_requeue_failed,
        'expire-requests': cmd_expire_requests,
        'issue-token': cmd_issue_token,
    }

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
