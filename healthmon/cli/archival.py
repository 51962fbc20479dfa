# healthmon/cli/archival.py
"""
CLI commands for account archival.

Usage:
    python -m healthmon.cli.archival status
    python -m healthmon.cli.archival archive patient-42 --operator admin-1 --reason cured
    python -m healthmon.cli.archival unarchive patient-42 --operator admin-1 --reason "returned"
    python -m healthmon.cli.archival bulk-archive p-1 p-2 p-3 --operator admin-1 --reason inactive
    python -m healthmon.cli.archival delete patient-42 --operator admin-1 --confirm
    python -m healthmon.cli.archival history --subject patient-42
    python -m healthmon.cli.archival purge-due
"""

import argparse
import json
import sys

from dotenv import load_dotenv

# Load .env before anything reads settings
load_dotenv()


def get_services():
    """Build archival services on the configured database."""
    from healthmon.database import SessionLocal, init_db
    from healthmon.services.archival.factory import create_archival_services

    init_db()
    return create_archival_services(SessionLocal)


def _fail(error) -> None:
    print(f"Error [{error.code}]: {error.message}")
    sys.exit(1)


def cmd_status(args):
    """Show archival statistics."""
    services = get_services()
    stats = services.statistics.get_statistics()

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
        return

    print("\n=== Archival Status ===\n")
    print(f"Total accounts: {stats.total_accounts}")
    print(f"  Active: {stats.active}")
    print(f"  Archived: {stats.archived}")
    print(f"  Archived this month: {stats.archived_this_month}")
    print(f"  Archived this year: {stats.archived_this_year}")

    print("\nArchived by reason:")
    for reason, count in sorted(stats.archived_by_reason.items()):
        print(f"  {reason}: {count}")

    print("\nArchived by role:")
    for role, count in sorted(stats.archived_by_role.items()):
        print(f"  {role}: {count}")

    print("\nRetention:")
    print(f"  Eligible for permanent deletion: {stats.purge_eligible}")
    print(f"  Deletion in progress: {stats.purge_in_progress}")

    print("\nAudit trail:")
    for action, count in sorted(stats.audit_entries_by_action.items()):
        print(f"  {action}: {count}")
    if stats.archived_without_audit or stats.audit_write_failures:
        print(f"  WARNING: {stats.archived_without_audit} archived accounts without archive entry")
        print(f"  WARNING: {stats.audit_write_failures} failed audit writes")
    print()


def cmd_archive(args):
    """Archive one account."""
    from healthmon.services.archival.errors import ArchivalError

    services = get_services()
    try:
        result = services.lifecycle.archive(args.subject, args.operator, args.reason, args.comment)
    except ArchivalError as e:
        _fail(e)

    print(f"Archived {result.record.id} ({result.record.email})")
    print(f"  Permanent deletion possible from: {result.scheduled_purge_at.isoformat()}")


def cmd_unarchive(args):
    """Return an archived account to active."""
    from healthmon.services.archival.errors import ArchivalError

    services = get_services()
    try:
        result = services.lifecycle.unarchive(args.subject, args.operator, args.reason)
    except ArchivalError as e:
        _fail(e)

    print(f"Unarchived {result.record.id} ({result.record.email})")


def cmd_bulk_archive(args):
    """Archive several accounts, reporting each outcome."""
    from healthmon.services.archival.errors import ArchivalError

    services = get_services()
    try:
        result = services.bulk.bulk_archive(args.subjects, args.operator, args.reason, args.comment)
    except ArchivalError as e:
        _fail(e)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\nBulk archive {result.batch_id}")
    print(f"Total: {result.total}")
    print(f"Archived: {len(result.succeeded)}")
    for item in result.succeeded:
        print(f"  - {item.subject_id} (deletion from {item.scheduled_purge_at.isoformat()})")
    print(f"Failed: {len(result.failed)}")
    for item in result.failed:
        print(f"  - {item.subject_id}: {item.error_code} ({item.message})")

    if not result.success:
        sys.exit(1)


def cmd_delete(args):
    """Permanently delete an archived account."""
    from healthmon.services.archival.errors import ArchivalError

    if not args.confirm:
        print("Error: Permanent deletion requires --confirm")
        print("This erases the account and its measurement history and cannot be undone")
        sys.exit(1)

    services = get_services()
    try:
        confirmation = services.lifecycle.permanently_delete(args.subject, args.operator)
    except ArchivalError as e:
        _fail(e)

    print(f"Permanently deleted {confirmation.subject_id}")
    for table, count in confirmation.records_deleted.items():
        print(f"  {table}: {count}")


def cmd_history(args):
    """Show audit entries for a subject or an operator."""
    services = get_services()
    if args.subject:
        entries = services.audit.find_by_subject(args.subject)
    else:
        entries = services.audit.find_by_actor(args.actor)

    if not entries:
        print("No audit entries")
        return

    for entry in entries:
        reason = f" reason={entry.reason}" if entry.reason else ""
        print(f"{entry.created_at.isoformat()}  {entry.action:<17} subject={entry.subject_id} by={entry.actor_id}{reason}")


def cmd_purge_due(args):
    """List archived accounts whose retention window has elapsed."""
    services = get_services()
    records = services.lifecycle.find_purge_eligible(limit=args.limit)

    print(f"\n{len(records)} accounts eligible for permanent deletion\n")
    for record in records:
        print(
            f"{record.id}  {record.role:<13} archived {record.archived_at.isoformat()} "
            f"({record.archive_reason}), due {record.scheduled_purge_at.isoformat()}"
        )


def main(argv=None):
    from healthmon.models import ArchivalReason

    parser = argparse.ArgumentParser(
        description="Account Archival CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check current status
  python -m healthmon.cli.archival status

  # Archive a patient who recovered
  python -m healthmon.cli.archival archive patient-42 --operator admin-1 --reason cured

  # Erase an account after the retention window
  python -m healthmon.cli.archival delete patient-42 --operator admin-1 --confirm
        """,
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)
    reasons = [r.value for r in ArchivalReason]

    # status command
    status_parser = subparsers.add_parser("status", help="Show archival statistics")
    status_parser.add_argument("--json", action="store_true", help="Print statistics as JSON")
    status_parser.set_defaults(func=cmd_status)

    # archive command
    archive_parser = subparsers.add_parser("archive", help="Archive an account")
    archive_parser.add_argument("subject", help="Account id to archive")
    archive_parser.add_argument("--operator", required=True, help="Operator account id")
    archive_parser.add_argument("--reason", required=True, choices=reasons, help="Archival reason")
    archive_parser.add_argument("--comment", default="", help="Optional comment (max 500 chars)")
    archive_parser.set_defaults(func=cmd_archive)

    # unarchive command
    unarchive_parser = subparsers.add_parser("unarchive", help="Reactivate an archived account")
    unarchive_parser.add_argument("subject", help="Account id to reactivate")
    unarchive_parser.add_argument("--operator", required=True, help="Operator account id")
    unarchive_parser.add_argument("--reason", default="", help="Why the account is reactivated")
    unarchive_parser.set_defaults(func=cmd_unarchive)

    # bulk-archive command
    bulk_parser = subparsers.add_parser("bulk-archive", help="Archive several accounts")
    bulk_parser.add_argument("subjects", nargs="+", help="Account ids to archive")
    bulk_parser.add_argument("--operator", required=True, help="Operator account id")
    bulk_parser.add_argument("--reason", required=True, choices=reasons, help="Archival reason")
    bulk_parser.add_argument("--comment", default="", help="Optional comment (max 500 chars)")
    bulk_parser.set_defaults(func=cmd_bulk_archive)

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Permanently delete an archived account")
    delete_parser.add_argument("subject", help="Account id to erase")
    delete_parser.add_argument("--operator", required=True, help="Operator account id")
    delete_parser.add_argument("--confirm", action="store_true", help="Confirm permanent deletion")
    delete_parser.set_defaults(func=cmd_delete)

    # history command
    history_parser = subparsers.add_parser("history", help="Show audit entries")
    history_group = history_parser.add_mutually_exclusive_group(required=True)
    history_group.add_argument("--subject", help="Entries about this account")
    history_group.add_argument("--actor", help="Entries written for this operator")
    history_parser.set_defaults(func=cmd_history)

    # purge-due command
    due_parser = subparsers.add_parser("purge-due", help="List accounts eligible for deletion")
    due_parser.add_argument("--limit", type=int, default=100, help="Max accounts to list (default: 100)")
    due_parser.set_defaults(func=cmd_purge_due)

    args = parser.parse_args(argv)

    from healthmon.config import get_settings
    from healthmon.logging_config import configure_logging

    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=args.log_level or settings.LOG_LEVEL)

    args.func(args)


if __name__ == "__main__":
    main()
