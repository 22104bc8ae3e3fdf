#!/usr/bin/env python3
"""credrotate CLI - rotate the access key of one credentials profile

Usage:
    credrotate rotate [--period 90days] [--force]
    credrotate check --period 90days
    credrotate list

Exit status is 0 on success (including "not due" and rotations with
warnings), the fault's exit code on failure, and 1 for `check` when rotation
is due.
"""

import argparse
import json
import logging
import signal
import sys
import threading
from datetime import datetime
from typing import Optional

from . import __version__
from .config import Settings, load_settings
from .credentials import (CredentialDirectoryClient, CredentialRotator,
                          RotationOutcome, RotationPolicy, RotationResult,
                          SharedCredentialsStore, credential_age_seconds)
from .exceptions import RotationError
from .file_lock import FileLock
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_DUE = 1


def build_store(settings: Settings) -> SharedCredentialsStore:
    return SharedCredentialsStore(
        settings.credentials_path,
        profile=settings.profile,
        backup_path=settings.backup_path,
    )


def build_directory(settings: Settings, store: SharedCredentialsStore) -> CredentialDirectoryClient:
    """Provider client authenticated with the key currently in the store."""
    return CredentialDirectoryClient.from_credential(
        store.read(), region=settings.region, user_name=settings.user_name
    )


def build_rotator(
    settings: Settings,
    cancel_event: Optional[threading.Event] = None,
) -> CredentialRotator:
    store = build_store(settings)
    return CredentialRotator(
        build_directory(settings, store),
        store,
        cancel_event=cancel_event,
        lock=FileLock(settings.lock_path),
    )


def _print_result(result: RotationResult, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return

    if result.error is not None:
        print(f"FAILED ({result.error.kind}): {result.error}", file=sys.stderr)
        return

    if result.outcome in (RotationOutcome.NOT_DUE, RotationOutcome.DUE):
        label = "due" if result.outcome == RotationOutcome.DUE else "not due"
        if result.age_seconds is None:
            print(f"Rotation {label} for {result.old_key_id}")
        else:
            print(
                f"Rotation {label} for {result.old_key_id} "
                f"(age {result.age_seconds}s, period {result.period_seconds}s)"
            )
        return

    print(f"Rotated {result.old_key_id} -> {result.new_key_id}")
    if result.spare_key_id:
        print(f"Deleted spare key {result.spare_key_id}")
    for warning in result.warnings:
        print(f"WARNING ({warning.kind}): {warning}", file=sys.stderr)


def run_rotate(args, settings: Settings) -> int:
    cancel_event = threading.Event()

    def _cancel(signum, frame):
        logger.warning(f"Received signal {signum}, cancelling rotation")
        cancel_event.set()

    previous = signal.signal(signal.SIGTERM, _cancel)
    try:
        rotator = build_rotator(settings, cancel_event=cancel_event)
        period = args.period or settings.period
        policy = RotationPolicy(period=period, force=args.force)
        result = rotator.run(policy)
    finally:
        signal.signal(signal.SIGTERM, previous)

    _print_result(result, args.json)
    return result.exit_code


def run_check(args, settings: Settings) -> int:
    rotator = build_rotator(settings)
    result = rotator.evaluate(args.period or settings.period)
    _print_result(result, args.json)
    if result.error is not None:
        return result.exit_code
    return EXIT_DUE if result.outcome == RotationOutcome.DUE else 0


def run_list(args, settings: Settings) -> int:
    store = build_store(settings)
    local = store.read()
    directory = build_directory(settings, store)
    credentials = directory.list_credentials()

    if args.json:
        print(json.dumps([dict(c.to_dict(), local=c.key_id == local.key_id) for c in credentials], indent=2))
        return 0

    for credential in credentials:
        age_days = ""
        if credential.created_at is not None:
            age_days = f"{credential_age_seconds(credential.created_at) // 86400}d"
        marker = "*" if credential.key_id == local.key_id else " "
        created = credential.created_at.isoformat() if credential.created_at else "-"
        print(f"{marker} {credential.key_id}  {credential.status.value:<8}  {created}  {age_days}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credrotate",
        description="Rotate the access key of a credentials profile without losing access",
    )
    parser.add_argument("--version", action="version", version=f"credrotate {__version__}")
    parser.add_argument("--profile", help="Credentials profile to rotate (default: default)")
    parser.add_argument("--credentials-file", help="Shared credentials file (default: ~/.aws/credentials)")
    parser.add_argument("--region", help="Provider region")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--debug", action="store_true", help="Log debug output to the console")
    parser.add_argument("--nolog", action="store_true", help="Do not write a log file")
    parser.add_argument("--log-json", action="store_true", help="Write log lines as JSON")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    rotate_parser = subparsers.add_parser("rotate", help="Rotate the access key if due (now without --period)")
    rotate_parser.add_argument("--period", help="Rotate only if the key is at least this old (e.g. 90days)")
    rotate_parser.add_argument(
        "--force",
        action="store_true",
        help="Delete a spare key and supersede a stale backup",
    )

    check_parser = subparsers.add_parser("check", help="Report whether rotation is due")
    check_parser.add_argument("--period", help="Rotation period (e.g. 90days)")

    subparsers.add_parser("list", help="List access keys (no secrets)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = load_settings(
        config_file=args.config,
        profile=args.profile,
        credentials_file=args.credentials_file,
        region=args.region,
        log_level="DEBUG" if args.debug else None,
        log_json=True if args.log_json else None,
    )
    configure_logging(
        log_dir=settings.log_path,
        log_level=settings.log_level,
        log_to_file=not args.nolog,
        structured=settings.log_json,
        run_id=f"{args.command}-{datetime.now().strftime('%Y%m%d%H%M%S')}",
    )

    handlers = {
        "rotate": run_rotate,
        "check": run_check,
        "list": run_list,
    }
    try:
        return handlers[args.command](args, settings)
    except RotationError as e:
        logger.error(f"{e.kind}: {e}")
        print(f"FAILED ({e.kind}): {e}", file=sys.stderr)
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
