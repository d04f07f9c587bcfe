# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, date, datetime, timedelta
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any, Protocol

from dotenv import find_dotenv, load_dotenv

from payrecon.app import (
    LinkRequest,
    MaterializeRequest,
    ReconcileRequest,
    RepairRequest,
    ScanRequest,
    detect_profile_duplicates,
    link_queue_payment,
    list_card_candidates,
    materialize_queue,
    reconcile_payment_amounts,
    repair_card_collision,
    scan_profile_duplicates,
)
from payrecon.config import configure_logging
from payrecon.domain.collision_repair import collision_payload
from payrecon.domain.model import QueueCursor
from payrecon.domain.outcomes import Failure, Ok, Stop
from payrecon.domain.time_windows import DateRange, TimeWindow

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import FrameType

    from payrecon.domain.outcomes import Outcome

log = logging.getLogger(__name__)

EXIT_STOPPED = 3


def _add_execute_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Apply changes (the default is a dry run that only reports)",
    )


def _add_actor(parser: argparse.ArgumentParser, *, required: bool = False) -> None:
    parser.add_argument(
        "--actor-user-id",
        type=str,
        required=required,
        help="User id of the operator recorded in the audit log",
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile bePaid payments with the ledger")
    subparsers = parser.add_subparsers(dest="command", required=True)

    materialize = subparsers.add_parser(
        "materialize", help="Promote completed queue items into the payment ledger"
    )
    materialize.add_argument(
        "--limit",
        type=int,
        help="Maximum number of queue items to scan (default 200, capped at 1000)",
    )
    materialize.add_argument(
        "--start",
        type=str,
        help="ISO-8601 timestamp (UTC) marking the inclusive start of the window",
    )
    materialize.add_argument(
        "--end",
        type=str,
        help="ISO-8601 timestamp (UTC) marking the inclusive end of the window",
    )
    materialize.add_argument(
        "--lookback-hours",
        type=float,
        help="Relative lookback window in hours (overrides start if larger)",
    )
    materialize.add_argument("--profile-id", type=str, help="Only items matched to this profile")
    materialize.add_argument(
        "--cursor-paid-at",
        type=str,
        help="Resume after this paid_at (from a previous next_cursor)",
    )
    materialize.add_argument("--cursor-id", type=str, help="Resume after this queue id")
    materialize.add_argument(
        "--rescan-minutes",
        type=float,
        help="Also pick up late items this many minutes behind the cursor",
    )
    _add_execute_flag(materialize)

    reconcile = subparsers.add_parser(
        "reconcile-amounts", help="Compare ledger amounts with the bePaid API"
    )
    reconcile.add_argument("--from-date", type=str, required=True, help="First day (YYYY-MM-DD)")
    reconcile.add_argument("--to-date", type=str, required=True, help="Last day (YYYY-MM-DD)")
    reconcile.add_argument(
        "--batch-size",
        type=int,
        help="Maximum number of payments to check (default 200, capped at 1000)",
    )
    reconcile.add_argument(
        "--only-sentinel-amount",
        action="store_true",
        help="Only check payments stored with the placeholder amount 1",
    )
    _add_actor(reconcile)
    _add_execute_flag(reconcile)

    candidates = subparsers.add_parser(
        "card-candidates", help="List profiles linked to a card mask"
    )
    candidates.add_argument("--last4", type=str, required=True)
    candidates.add_argument("--brand", type=str, required=True)

    repair = subparsers.add_parser(
        "repair-collision", help="Keep only one profile's link for a card mask"
    )
    repair.add_argument("--last4", type=str, required=True)
    repair.add_argument("--brand", type=str, required=True)
    repair.add_argument("--target-profile-id", type=str, required=True)
    _add_actor(repair)
    _add_execute_flag(repair)

    scan = subparsers.add_parser("scan-duplicates", help="Open cases for duplicate profiles")
    scan.add_argument(
        "--limit",
        type=int,
        help="Maximum number of profiles to scan (default 1000, capped at 10000)",
    )
    _add_actor(scan)
    _add_execute_flag(scan)

    detect = subparsers.add_parser(
        "detect-duplicates", help="Check one profile for duplicates"
    )
    detect.add_argument("--profile-id", type=str, required=True)
    _add_actor(detect)
    _add_execute_flag(detect)

    link = subparsers.add_parser("link-payment", help="Link a queue item to an order")
    link.add_argument("--queue-id", type=str, required=True)
    link.add_argument("--order-id", type=str, required=True)
    link.add_argument("--profile-id", type=str)
    link.add_argument("--user-id", type=str)
    _add_actor(link, required=True)

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _build_materialize_request(
    args: argparse.Namespace,
    *,
    now_provider: Callable[[], datetime] = _utcnow,
) -> MaterializeRequest:
    lookback: timedelta | None = None
    if args.lookback_hours is not None:
        if args.lookback_hours < 0:
            raise ValueError("Lookback hours must be non-negative")
        lookback = timedelta(hours=args.lookback_hours)
    window = TimeWindow(
        start=_parse_iso_datetime(args.start) if args.start else None,
        end=_parse_iso_datetime(args.end) if args.end else None,
        lookback=lookback,
    )
    paid_from, paid_to = window.resolve(clock=now_provider)

    cursor: QueueCursor | None = None
    if args.cursor_paid_at or args.cursor_id:
        if not (args.cursor_paid_at and args.cursor_id):
            raise ValueError("--cursor-paid-at and --cursor-id must be given together")
        cursor = QueueCursor(paid_at=_parse_iso_datetime(args.cursor_paid_at), id=args.cursor_id)

    rescan = timedelta(minutes=args.rescan_minutes) if args.rescan_minutes is not None else None
    return MaterializeRequest(
        limit=args.limit,
        dry_run=not args.execute,
        paid_from=paid_from,
        paid_to=paid_to,
        profile_id=args.profile_id,
        cursor=cursor,
        rescan_window=rescan,
    )


class _HasPayload(Protocol):
    def as_payload(self) -> dict[str, Any]: ...


def _emit(payload: dict[str, Any] | list[dict[str, Any]]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _render(outcome: Outcome[_HasPayload]) -> int:
    match outcome:
        case Ok(value=value):
            _emit(value.as_payload())
            return 0
        case Stop():
            _emit(outcome.as_payload())
            return EXIT_STOPPED
        case Failure():
            _emit(outcome.as_payload())
            return 1


def _run_repair(request: RepairRequest) -> int:
    outcome = repair_card_collision(request)
    _emit(collision_payload(outcome))
    if isinstance(outcome, Stop):
        return EXIT_STOPPED
    return 1 if isinstance(outcome, Failure) else 0


def _dispatch(args: argparse.Namespace) -> int:
    dry_run = not getattr(args, "execute", False)
    if args.command == "materialize":
        return _render(materialize_queue(_build_materialize_request(args)))
    if args.command == "reconcile-amounts":
        period = DateRange(start=_parse_date(args.from_date), end=_parse_date(args.to_date))
        return _render(
            reconcile_payment_amounts(
                ReconcileRequest(
                    period=period,
                    dry_run=dry_run,
                    batch_size=args.batch_size,
                    only_sentinel_amount=args.only_sentinel_amount,
                    actor_user_id=args.actor_user_id,
                )
            )
        )
    if args.command == "card-candidates":
        candidates = list_card_candidates(args.last4, args.brand)
        _emit([candidate.as_payload() for candidate in candidates])
        return 0
    if args.command == "repair-collision":
        return _run_repair(
            RepairRequest(
                last4=args.last4,
                brand=args.brand,
                target_profile_id=args.target_profile_id,
                dry_run=dry_run,
                actor_user_id=args.actor_user_id,
            )
        )
    if args.command == "scan-duplicates":
        return _render(
            scan_profile_duplicates(
                ScanRequest(limit=args.limit, dry_run=dry_run, actor_user_id=args.actor_user_id)
            )
        )
    if args.command == "detect-duplicates":
        return _render(
            detect_profile_duplicates(
                args.profile_id, dry_run=dry_run, actor_user_id=args.actor_user_id
            )
        )
    if args.command == "link-payment":
        return _render(
            link_queue_payment(
                LinkRequest(
                    queue_id=args.queue_id,
                    order_id=args.order_id,
                    actor_user_id=args.actor_user_id,
                    profile_id=args.profile_id,
                    user_id=args.user_id,
                )
            )
        )
    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    # .env is looked up from the working directory
    load_dotenv(find_dotenv(usecwd=True))
    signal(SIGINT, sigint_handler)
    configure_logging()
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        exit_code = _dispatch(parsed_args)
    except ValueError:
        # InvalidRequestError included
        log.exception("CLI validation error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    main()
