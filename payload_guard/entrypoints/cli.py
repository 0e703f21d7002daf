from __future__ import annotations

import argparse
import sys

from payload_guard.entrypoints import commands
from payload_guard.entrypoints.runtime_builder import build_runtime, log_startup
from payload_guard.entrypoints.service_loop import run_loop


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Invalid payload lifecycle service")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the expiry/deletion dispatcher loop")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Classify a JSON payload as POST /validate would",
    )
    validate_parser.add_argument(
        "--body",
        default=None,
        help="Raw request body (read from stdin when omitted)",
    )

    delete_parser = subparsers.add_parser(
        "delete",
        help="Run a scheduled deletion for one record now",
    )
    delete_parser.add_argument(
        "--created-at",
        type=int,
        required=True,
        help="Record creation timestamp (epoch seconds)",
    )
    delete_parser.add_argument(
        "--partition-key",
        default=None,
        help="Partition key (defaults to PARTITION_KEY)",
    )

    prune_parser = subparsers.add_parser(
        "prune-feed",
        help="Delete acknowledged removal-feed rows and fired triggers",
    )
    prune_parser.add_argument(
        "--days",
        type=int,
        default=7,
        help="Delete rows older than this many days",
    )
    prune_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview removal count without deleting",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"

    if command == "validate":
        body = args.body if args.body is not None else sys.stdin.read()
        return commands.validate_payload(body, build_runtime_fn=build_runtime)

    if command == "delete":
        if args.created_at < 0:
            parser.error("--created-at must be >= 0")
        return commands.delete_record(
            args.created_at,
            partition_key=args.partition_key,
            build_runtime_fn=build_runtime,
        )

    if command == "prune-feed":
        if args.days < 0:
            parser.error("--days must be >= 0")
        return commands.prune_feed(
            days=args.days,
            dry_run=args.dry_run,
            build_runtime_fn=build_runtime,
        )

    return commands.run_service(
        build_runtime_fn=build_runtime,
        log_startup_fn=log_startup,
        run_loop_fn=run_loop,
    )


if __name__ == "__main__":
    raise SystemExit(main())
