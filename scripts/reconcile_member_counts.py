#!/usr/bin/env python3
"""Recompute the cached member count of every active study room."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.database import SessionLocal  # noqa: E402
from app.services.membership import MembershipService  # noqa: E402
from app.services.notifier import event_notifier  # noqa: E402

logger = logging.getLogger("reconcile_member_counts")


def reconcile(session_factory=SessionLocal) -> list[dict[str, int]]:
    """Repair drifted counters and describe what was changed."""

    with session_factory() as db:
        drifted = MembershipService(db, event_notifier).reconcile_member_counts()
    return [
        {"room_id": room_id, "stored": stored, "actual": actual}
        for room_id, stored, actual in drifted
    ]


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    report = reconcile()
    if args.json:
        print(json.dumps(report, indent=2, sort_keys=True))
    elif not report:
        print("All member counts are consistent")
    else:
        for entry in report:
            print(f"room {entry['room_id']}: {entry['stored']} -> {entry['actual']}")
    logger.info("Reconciled %d room(s)", len(report))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
