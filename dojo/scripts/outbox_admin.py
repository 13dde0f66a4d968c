"""
Operator tool for the outbox.

Usage:
    python -m dojo.scripts.outbox_admin list [--status failed|all|<status>] [--limit 50]
    python -m dojo.scripts.outbox_admin show <entry_id>
    python -m dojo.scripts.outbox_admin retry <entry_id>
    python -m dojo.scripts.outbox_admin abandon <entry_id>
    python -m dojo.scripts.outbox_admin sweep
    python -m dojo.scripts.outbox_admin summary
"""
import argparse
import json
import sys

from dojo.datetime_utils import format_datetime_local
from dojo.outbox.entry import EntryStatus
from dojo.outbox.errors import OutboxError


def _print_entries(entries):
    if not entries:
        print("[INFO] No entries found")
        return
    for entry in entries:
        print(
            f"{entry.id}  {entry.action_type:<14} {entry.status.value:<10} "
            f"attempts={entry.attempts}/{entry.max_attempts}  "
            f"last={format_datetime_local(entry.last_attempted_at) or '-'}  {entry.error_message[:60]}"
        )
    print(f"\n[INFO] {len(entries)} entries")


def _list(outbox, args):
    store = outbox.store
    if args.status == "all":
        entries = store.list_pending(args.limit)
    elif args.status == EntryStatus.FAILED.value:
        entries = store.list_failed(args.limit, max_attempts=outbox.processor.max_attempts)
    else:
        entries = store.list_by_status(args.status, args.limit)
    _print_entries(entries)


def build_parser():
    parser = argparse.ArgumentParser(description="Inspect, retry and abandon outbox entries.")
    sub = parser.add_subparsers(dest="command", required=True)

    list_parser = sub.add_parser("list", help="List entries")
    list_parser.add_argument(
        "--status",
        default=EntryStatus.FAILED.value,
        choices=["all"] + [s.value for s in EntryStatus],
        help="'failed' lists exhausted failures, 'all' lists everything still pending",
    )
    list_parser.add_argument("--limit", type=int, default=50)

    for name, help_text in (
        ("show", "Print one entry as JSON"),
        ("retry", "Attempt an entry now, ignoring backoff"),
        ("abandon", "Stop retrying an entry"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("entry_id")

    sub.add_parser("sweep", help="Run one sweep over pending entries")
    sub.add_parser("summary", help="Entry counts by status")
    return parser


def run(args, app):
    """Run one parsed command against the app's outbox. Returns the exit code."""
    from dojo.outbox import get_outbox
    from dojo.outbox.service import OutboxService

    with app.app_context():
        outbox = get_outbox(app)
        try:
            if args.command == "list":
                _list(outbox, args)
            elif args.command == "show":
                print(json.dumps(outbox.store.get_by_id(args.entry_id).to_dict(), indent=2))
            elif args.command == "retry":
                entry = outbox.processor.process_single(args.entry_id)
                print(f"[INFO] Entry {entry.id} is now {entry.status.value} after attempt {entry.attempts}")
                if entry.error_message:
                    print(f"[INFO] Last error: {entry.error_message}")
            elif args.command == "abandon":
                entry = outbox.processor.abandon_entry(args.entry_id)
                print(f"[INFO] Entry {entry.id} abandoned")
            elif args.command == "sweep":
                result = outbox.processor.process_pending()
                print(json.dumps(result.to_dict(), indent=2))
            elif args.command == "summary":
                print(json.dumps(OutboxService.summary(outbox.store, max_attempts=outbox.processor.max_attempts), indent=2))
        except OutboxError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            return 1
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    from dojo import create_app
    return run(args, create_app())


if __name__ == "__main__":
    sys.exit(main())
