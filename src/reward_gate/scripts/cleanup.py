"""Delete expired replay, rate-limit, usage and audit rows.

Typical usage:
  python -m reward_gate.scripts.cleanup
  python -m reward_gate.scripts.cleanup --only nonces --only audit
"""
from __future__ import annotations

import argparse
import logging
import sys

from reward_gate.db.session import SessionLocal
from reward_gate.db.time import utcnow
from reward_gate.services.errors import StoreUnavailableError
from reward_gate.services.maintenance import (
    cleanup_audit_log,
    cleanup_daily_usage,
    cleanup_expired_nonces,
    cleanup_rate_limits,
    run_cleanup,
)
from reward_gate.services.store import SecurityStore

TASKS = ("nonces", "rate_limits", "usage", "audit")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reward gate storage hygiene")
    parser.add_argument(
        "--only",
        action="append",
        choices=TASKS,
        help="Run only the named task (repeatable). Default: all tasks.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def run_tasks(store: SecurityStore, tasks: list[str] | None) -> dict[str, int]:
    if not tasks:
        return run_cleanup(store).as_dict()

    now = utcnow()
    runners = {
        "nonces": lambda: cleanup_expired_nonces(store, now=now),
        "rate_limits": lambda: cleanup_rate_limits(store, now=now),
        "usage": lambda: cleanup_daily_usage(store, now=now),
        "audit": lambda: cleanup_audit_log(store, now=now),
    }
    return {task: runners[task]() for task in tasks}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    db = SessionLocal()
    try:
        counts = run_tasks(SecurityStore(db), args.only)
    except StoreUnavailableError as exc:
        print(f"[cleanup][FAIL] {exc}", file=sys.stderr)
        return 1
    finally:
        db.close()

    for task, deleted in counts.items():
        print(f"[cleanup] {task}: {deleted} row(s) deleted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
