"""Run behavior analysis for selected users, all users, or only stale profiles."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from typing import List, Optional

from study_scheduler.behavior_learning import BehaviorLearningService, behavior_learning
from study_scheduler.logging_config import configure_logging

LOGGER = logging.getLogger("study_scheduler.analyze_behavior")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recompute learned behavior profiles.")
    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "--user",
        action="append",
        dest="users",
        default=None,
        help="User id to analyze; repeat for several users (default: every user with a plan).",
    )
    target.add_argument(
        "--stale",
        action="store_true",
        help="Only analyze profiles not refreshed within --hours.",
    )
    parser.add_argument(
        "--hours",
        type=int,
        default=24,
        help="Staleness threshold in hours used with --stale (default: 24).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for this run (default: SCHEDULER_LOG_LEVEL or INFO).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None, service: BehaviorLearningService = behavior_learning) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        if args.stale:
            summary = service.analyze_stale_profiles(hours=args.hours)
        else:
            summary = service.batch_analyze(args.users)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Behavior analysis run failed: %s", exc)
        return 1

    payload = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": summary.model_dump(),
    }
    print(json.dumps(payload))
    return 0 if summary.errors == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
