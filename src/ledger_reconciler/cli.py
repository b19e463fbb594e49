"""Command-line interface for Ledger Reconciler."""

import argparse
import functools
import json
import sys
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any
from uuid import UUID

from ledger_reconciler.config import DatabaseType, get_settings
from ledger_reconciler.container import Container
from ledger_reconciler.domain.reconciliation import (
    ReconciliationSession,
    ReconciliationSessionStatus,
    StatementItem,
    StatementItemStatus,
)
from ledger_reconciler.domain.transactions import LedgerTransaction
from ledger_reconciler.domain.value_objects import parse_amount, parse_date
from ledger_reconciler.exceptions import LedgerReconcilerError, ParseError
from ledger_reconciler.logging_config import configure_logging
from ledger_reconciler.repositories.sqlite import SQLiteDatabase
from ledger_reconciler.services.interfaces import ItemFilter

Command = Callable[[argparse.Namespace], int]


def get_default_db_path() -> Path:
    """Database path from settings (LRC_SQLITE_PATH), relative to the cwd."""
    return Path(get_settings().sqlite_path)


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.database) if args.database else get_default_db_path()


def open_container(db_path: Path) -> Container:
    """Container bound to the SQLite database at db_path."""
    settings = get_settings().model_copy(
        update={"database_type": DatabaseType.SQLITE, "sqlite_path": db_path}
    )
    return Container(settings=settings)


def handles_errors(func: Command) -> Command:
    """Open the database, run the command, report domain errors as exit code 1."""

    @functools.wraps(func)
    def wrapper(args: argparse.Namespace) -> int:
        db_path = _db_path(args)
        if not db_path.exists():
            print(f"Error: Database not found at {db_path}")
            print("Run 'lrc init' to create a new database")
            return 1
        try:
            with open_container(db_path) as container:
                args.container = container
                return func(args)
        except LedgerReconcilerError as e:
            print(f"Error: {e.message}")
            return 1
        except ValueError as e:
            print(f"Error: {e}")
            return 1

    return wrapper


def load_rows(path: Path) -> list[dict[str, Any]]:
    """Read a JSON array of statement row objects."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ParseError(str(path), "file not found") from None
    except json.JSONDecodeError as e:
        raise ParseError(str(path), f"invalid JSON ({e.msg} at line {e.lineno})") from e
    if not isinstance(data, list):
        raise ParseError(str(path), "expected a JSON array of rows")
    return data


def _print_session(session: ReconciliationSession) -> None:
    print(f"Session: {session.id}")
    print(f"  Account: {session.account_id}")
    print(f"  Period: {session.period_start} to {session.period_end}")
    print(f"  Status: {session.status.value}")
    balance = session.statement_ending_balance
    print(f"  Statement balance: {balance if balance is not None else '(not set)'}")
    print(f"  Book balance: {session.book_ending_balance}")
    if session.difference is not None:
        print(f"  Difference: {session.difference}")
    print(
        f"  Items: {session.item_count} "
        f"(matched {session.matched_count}, unmatched {session.unmatched_count}, "
        f"ignored {session.ignored_count})"
    )
    if session.adjustments:
        print(f"  Adjustments: {session.adjustments_total}")
        for adjustment in session.adjustments:
            print(f"    {adjustment.id}  {adjustment.amount:>12}  {adjustment.description}")


def _print_item(item: StatementItem) -> None:
    confidence = item.match_confidence if item.match_confidence is not None else ""
    print(
        f"{str(item.id):<38} {item.line_number:>4} {item.item_date} "
        f"{str(item.amount):>12} {item.status.value:<10} {str(confidence):>4} "
        f"{item.description[:30]}"
    )


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new database."""
    db_path = _db_path(args)

    if db_path.exists() and not args.force:
        print(f"Database already exists at {db_path}")
        print("Use --force to reinitialize (WARNING: will delete existing data)")
        return 1

    if db_path.exists() and args.force:
        db_path.unlink()

    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = SQLiteDatabase(str(db_path))
    db.initialize()
    db.close()

    print(f"Initialized database at {db_path}")
    return 0


@handles_errors
def cmd_ledger_add(args: argparse.Namespace) -> int:
    """Record a ledger transaction to reconcile against."""
    txn = LedgerTransaction(
        account_id=UUID(args.account_id),
        transaction_date=parse_date(args.date),
        amount=parse_amount(args.amount),
        description=args.description or "",
    )
    args.container.ledger_repository.add(txn)
    print(f"Transaction added: {txn.id}")
    return 0


@handles_errors
def cmd_ledger_list(args: argparse.Namespace) -> int:
    """List ledger transactions for an account."""
    txns = list(args.container.ledger_repository.list_by_account(UUID(args.account_id)))
    for txn in txns:
        claim = f"matched to {txn.matched_item_id}" if txn.is_matched else "open"
        print(
            f"{str(txn.id):<38} {txn.transaction_date} {str(txn.amount):>12} "
            f"{claim:<50} {txn.description[:30]}"
        )
    print(f"Total: {len(txns)} transactions")
    return 0


@handles_errors
def cmd_session_create(args: argparse.Namespace) -> int:
    """Create a new reconciliation session."""
    session = args.container.reconciliation_service.create_session(
        account_id=UUID(args.account_id),
        period_start=date.fromisoformat(args.start),
        period_end=date.fromisoformat(args.end),
        statement_ending_balance=args.balance,
    )
    print(f"Session created: {session.id}")
    print(f"  Status: {session.status.value}")
    return 0


@handles_errors
def cmd_session_show(args: argparse.Namespace) -> int:
    session = args.container.reconciliation_service.get_session(UUID(args.session_id))
    _print_session(session)
    return 0


@handles_errors
def cmd_session_list(args: argparse.Namespace) -> int:
    """List reconciliation sessions."""
    account_id = UUID(args.account_id) if args.account_id else None
    status = ReconciliationSessionStatus(args.status) if args.status else None
    sessions = args.container.reconciliation_service.list_sessions(account_id, status)

    print(f"{'Session ID':<38} {'Status':<12} {'Period':<24} {'Items':>6}")
    print("-" * 84)
    for session in sessions:
        period = f"{session.period_start}..{session.period_end}"
        print(
            f"{str(session.id):<38} {session.status.value:<12} {period:<24} "
            f"{session.item_count:>6}"
        )
    print(f"Total: {len(sessions)} sessions")
    return 0


@handles_errors
def cmd_session_summary(args: argparse.Namespace) -> int:
    """Show balance figures and item counts."""
    summary = args.container.reconciliation_service.get_session_summary(
        UUID(args.session_id)
    )
    print(f"Session: {summary.session_id}")
    print(f"  Status: {summary.status.value}")
    print(f"  Statement balance: {summary.statement_ending_balance}")
    print(f"  Book balance: {summary.book_ending_balance}")
    print(f"  Adjustments: {summary.adjustments_total}")
    print(f"  Difference: {summary.difference}")
    print(f"  Balanced: {'yes' if summary.is_balanced else 'no'}")
    print(f"  Items: {summary.item_count}")
    print(f"  Matched: {summary.matched_count}")
    print(f"  Unmatched: {summary.unmatched_count}")
    print(f"  Ignored: {summary.ignored_count}")
    print(f"  Match rate: {summary.match_rate:.1%}")
    return 0


@handles_errors
def cmd_session_balance(args: argparse.Namespace) -> int:
    """Set the statement ending balance."""
    session = args.container.reconciliation_service.set_statement_balance(
        UUID(args.session_id), args.amount
    )
    print(f"Statement balance set to {session.statement_ending_balance}")
    return 0


@handles_errors
def cmd_session_complete(args: argparse.Namespace) -> int:
    session = args.container.reconciliation_service.complete_session(
        UUID(args.session_id), acknowledge_discrepancy=args.acknowledge_discrepancy
    )
    print(f"Session {session.id} is {session.status.value}")
    print(f"  Difference: {session.difference}")
    return 0


@handles_errors
def cmd_session_rollback(args: argparse.Namespace) -> int:
    session = args.container.reconciliation_service.rollback_session(
        UUID(args.session_id)
    )
    print(f"Session {session.id} rolled back to {session.status.value}")
    return 0


@handles_errors
def cmd_session_archive(args: argparse.Namespace) -> int:
    session = args.container.reconciliation_service.archive_session(
        UUID(args.session_id)
    )
    print(f"Session {session.id} archived")
    return 0


@handles_errors
def cmd_upload(args: argparse.Namespace) -> int:
    """Upload a JSON array of normalized statement rows."""
    rows = load_rows(Path(args.file))
    result = args.container.reconciliation_service.upload_statement(
        UUID(args.session_id), rows, timeout=args.timeout
    )
    print(f"Items created: {result.items_created}")
    if result.row_errors:
        print(f"Rejected rows: {len(result.row_errors)}")
        for error in result.row_errors:
            print(f"  row {error.row_number}: [{error.error_code}] {error.message}")
    return 0


@handles_errors
def cmd_auto_match(args: argparse.Namespace) -> int:
    """Run the matching engine over unmatched items."""
    result = args.container.reconciliation_service.run_auto_match(UUID(args.session_id))
    print(f"Matched: {result.matched_count}")
    print(f"  Exact: {result.exact_count}")
    print(f"  Scored: {result.scored_count}")
    if result.conflicts_skipped:
        print(f"  Conflicts skipped: {result.conflicts_skipped}")
    for suggestion in result.suggestions:
        if suggestion.transaction_id is None:
            print(f"  {suggestion.item_id}: no candidate")
        else:
            print(
                f"  {suggestion.item_id}: suggest {suggestion.transaction_id} "
                f"(score {suggestion.score})"
            )
    return 0


@handles_errors
def cmd_items(args: argparse.Namespace) -> int:
    """List statement items in a session."""
    item_filter = ItemFilter(
        status=StatementItemStatus(args.status) if args.status else None,
        limit=args.limit,
        offset=args.offset,
    )
    items = args.container.reconciliation_service.list_items(
        UUID(args.session_id), item_filter
    )
    print(
        f"{'Item ID':<38} {'Line':>4} {'Date':<10} {'Amount':>12} {'Status':<10} "
        f"{'Conf':>4} Description"
    )
    print("-" * 110)
    for item in items:
        _print_item(item)
    print(f"Total: {len(items)} items")
    return 0


@handles_errors
def cmd_match(args: argparse.Namespace) -> int:
    """Manually match an item to a ledger transaction."""
    item = args.container.reconciliation_service.manual_match(
        UUID(args.session_id),
        UUID(args.item_id),
        UUID(args.transaction_id),
        timeout=args.timeout,
    )
    print(f"Item {item.id} matched to {item.matched_transaction_id}")
    return 0


@handles_errors
def cmd_unmatch(args: argparse.Namespace) -> int:
    item = args.container.reconciliation_service.unmatch(
        UUID(args.session_id), UUID(args.item_id), timeout=args.timeout
    )
    print(f"Item {item.id} is {item.status.value}")
    return 0


@handles_errors
def cmd_ignore(args: argparse.Namespace) -> int:
    item = args.container.reconciliation_service.ignore_item(
        UUID(args.session_id), UUID(args.item_id), timeout=args.timeout
    )
    print(f"Item {item.id} is {item.status.value}")
    return 0


@handles_errors
def cmd_restore(args: argparse.Namespace) -> int:
    item = args.container.reconciliation_service.restore_item(
        UUID(args.session_id), UUID(args.item_id), timeout=args.timeout
    )
    print(f"Item {item.id} is {item.status.value}")
    return 0


@handles_errors
def cmd_adjust(args: argparse.Namespace) -> int:
    """Add or remove a balance adjustment."""
    service = args.container.reconciliation_service
    session_id = UUID(args.session_id)
    if args.remove:
        service.remove_adjustment(session_id, UUID(args.remove))
        print(f"Adjustment {args.remove} removed")
        return 0
    adjustment = service.add_adjustment(session_id, args.amount, args.description or "")
    print(f"Adjustment added: {adjustment.id} ({adjustment.amount})")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "ledger_reconciler.api.app:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=settings.api_reload,
    )
    return 0


def _add_timeout(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Operation timeout in seconds (default: LRC_OPERATION_TIMEOUT_SECONDS)",
    )


def _add_item_command(
    subparsers: Any, name: str, help_text: str, func: Command
) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(name, help=help_text)
    parser.add_argument("--session-id", required=True, help="Session ID")
    parser.add_argument("--item-id", required=True, help="Statement item ID")
    _add_timeout(parser)
    parser.set_defaults(func=func)
    return parser


def create_parser() -> tuple[argparse.ArgumentParser, dict[str, argparse.ArgumentParser]]:
    parser = argparse.ArgumentParser(
        prog="lrc",
        description="Ledger Reconciler - match bank statements against ledger transactions",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new database")
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Force reinitialization (deletes existing data)",
    )
    init_parser.set_defaults(func=cmd_init)

    # ledger commands
    ledger_parser = subparsers.add_parser("ledger", help="Ledger transaction commands")
    ledger_subparsers = ledger_parser.add_subparsers(
        dest="ledger_command", help="Ledger subcommands"
    )

    ledger_add_parser = ledger_subparsers.add_parser("add", help="Add a ledger transaction")
    ledger_add_parser.add_argument("--account-id", required=True, help="Account ID")
    ledger_add_parser.add_argument("--date", required=True, help="Transaction date")
    ledger_add_parser.add_argument(
        "--amount", required=True, help="Signed amount (withdrawals negative)"
    )
    ledger_add_parser.add_argument("--description", default="", help="Description")
    ledger_add_parser.set_defaults(func=cmd_ledger_add)

    ledger_list_parser = ledger_subparsers.add_parser(
        "list", help="List ledger transactions for an account"
    )
    ledger_list_parser.add_argument("--account-id", required=True, help="Account ID")
    ledger_list_parser.set_defaults(func=cmd_ledger_list)

    # session commands
    session_parser = subparsers.add_parser("session", help="Reconciliation session commands")
    session_subparsers = session_parser.add_subparsers(
        dest="session_command", help="Session subcommands"
    )

    session_create_parser = session_subparsers.add_parser(
        "create", help="Create a reconciliation session"
    )
    session_create_parser.add_argument(
        "--account-id", required=True, help="Account ID to reconcile"
    )
    session_create_parser.add_argument(
        "--start", required=True, help="Period start (YYYY-MM-DD)"
    )
    session_create_parser.add_argument("--end", required=True, help="Period end (YYYY-MM-DD)")
    session_create_parser.add_argument(
        "--balance", default=None, help="Statement ending balance"
    )
    session_create_parser.set_defaults(func=cmd_session_create)

    session_show_parser = session_subparsers.add_parser("show", help="Show a session")
    session_show_parser.add_argument("--session-id", required=True, help="Session ID")
    session_show_parser.set_defaults(func=cmd_session_show)

    session_list_parser = session_subparsers.add_parser("list", help="List sessions")
    session_list_parser.add_argument("--account-id", default=None, help="Filter by account")
    session_list_parser.add_argument(
        "--status",
        choices=[s.value for s in ReconciliationSessionStatus],
        help="Filter by status",
    )
    session_list_parser.set_defaults(func=cmd_session_list)

    session_summary_parser = session_subparsers.add_parser(
        "summary", help="Show session balance summary"
    )
    session_summary_parser.add_argument("--session-id", required=True, help="Session ID")
    session_summary_parser.set_defaults(func=cmd_session_summary)

    session_balance_parser = session_subparsers.add_parser(
        "balance", help="Set the statement ending balance"
    )
    session_balance_parser.add_argument("--session-id", required=True, help="Session ID")
    session_balance_parser.add_argument("--amount", required=True, help="Ending balance")
    session_balance_parser.set_defaults(func=cmd_session_balance)

    session_complete_parser = session_subparsers.add_parser(
        "complete", help="Complete a session"
    )
    session_complete_parser.add_argument("--session-id", required=True, help="Session ID")
    session_complete_parser.add_argument(
        "--acknowledge-discrepancy",
        action="store_true",
        help="Close with status 'discrepancy' when balances differ",
    )
    session_complete_parser.set_defaults(func=cmd_session_complete)

    session_rollback_parser = session_subparsers.add_parser(
        "rollback", help="Clear matches and reopen a closed session"
    )
    session_rollback_parser.add_argument("--session-id", required=True, help="Session ID")
    session_rollback_parser.set_defaults(func=cmd_session_rollback)

    session_archive_parser = session_subparsers.add_parser(
        "archive", help="Archive a closed session"
    )
    session_archive_parser.add_argument("--session-id", required=True, help="Session ID")
    session_archive_parser.set_defaults(func=cmd_session_archive)

    # upload command
    upload_parser = subparsers.add_parser("upload", help="Upload statement rows (JSON)")
    upload_parser.add_argument("--session-id", required=True, help="Session ID")
    upload_parser.add_argument("--file", required=True, help="JSON file with an array of rows")
    _add_timeout(upload_parser)
    upload_parser.set_defaults(func=cmd_upload)

    # auto-match command
    auto_match_parser = subparsers.add_parser("auto-match", help="Run automatic matching")
    auto_match_parser.add_argument("--session-id", required=True, help="Session ID")
    auto_match_parser.set_defaults(func=cmd_auto_match)

    # items command
    items_parser = subparsers.add_parser("items", help="List statement items")
    items_parser.add_argument("--session-id", required=True, help="Session ID")
    items_parser.add_argument(
        "--status",
        choices=[s.value for s in StatementItemStatus],
        help="Filter by status",
    )
    items_parser.add_argument("--limit", type=int, default=None, help="Max items to return")
    items_parser.add_argument("--offset", type=int, default=0, help="Offset for pagination")
    items_parser.set_defaults(func=cmd_items)

    # item commands
    match_parser = _add_item_command(
        subparsers, "match", "Manually match an item", cmd_match
    )
    match_parser.add_argument(
        "--transaction-id", required=True, help="Ledger transaction ID"
    )
    _add_item_command(subparsers, "unmatch", "Unmatch an item", cmd_unmatch)
    _add_item_command(subparsers, "ignore", "Exclude an item from reconciliation", cmd_ignore)
    _add_item_command(subparsers, "restore", "Restore an ignored item", cmd_restore)

    # adjust command
    adjust_parser = subparsers.add_parser("adjust", help="Add or remove a balance adjustment")
    adjust_parser.add_argument("--session-id", required=True, help="Session ID")
    adjust_group = adjust_parser.add_mutually_exclusive_group(required=True)
    adjust_group.add_argument("--amount", help="Adjustment amount")
    adjust_group.add_argument("--remove", metavar="ADJUSTMENT_ID", help="Adjustment to remove")
    adjust_parser.add_argument("--description", default="", help="Description")
    adjust_parser.set_defaults(func=cmd_adjust)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default: LRC_API_HOST)")
    serve_parser.add_argument("--port", type=int, help="Port (default: LRC_API_PORT)")
    serve_parser.set_defaults(func=cmd_serve)

    groups = {"ledger": ledger_parser, "session": session_parser}
    return parser, groups


def main(argv: list[str] | None = None) -> int:
    parser, groups = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    group = groups.get(args.command)
    if group is not None and getattr(args, f"{args.command}_command", None) is None:
        group.print_help()
        return 0

    configure_logging()

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
