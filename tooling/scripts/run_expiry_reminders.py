"""Run the expiry reminder sweep once.

Example:
    python tooling/scripts/run_expiry_reminders.py --trigger cron
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute the expiry reminder sweep once")
    parser.add_argument(
        "--trigger",
        default="manual",
        help="Label recorded on the run record to describe the invocation source.",
    )
    return parser.parse_args()


async def _run(trigger: str) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from recharge_api.db.session import async_session  # type: ignore import-position
    from recharge_api.workers import ExpiryReminderWorker  # type: ignore import-position

    worker = ExpiryReminderWorker(async_session)  # type: ignore[arg-type]
    return await worker.run_once(triggered_by=trigger)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.trigger))
    logger.success(
        "Expiry reminder sweep completed",
        sent=summary.get("sent", 0),
        failed=summary.get("failed", 0),
        overlapped=summary.get("overlapped", False),
        trigger=args.trigger,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
