"""Import recharge codes for a plan from a text file (one code per line).

Example:
    python tooling/scripts/import_codes.py --plan-id 8d3c... --file codes.txt
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from uuid import UUID

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import recharge codes into inventory")
    parser.add_argument("--plan-id", required=True, type=UUID, help="Plan receiving the codes.")
    parser.add_argument("--file", required=True, type=Path, help="Text file with one code per line.")
    return parser.parse_args()


async def _run(plan_id: UUID, source: Path) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from recharge_api.db.session import async_session  # type: ignore import-position
    from recharge_api.services.inventory import CodeInventoryService  # type: ignore import-position
    from recharge_api.services.inventory.formatter import parse_code_block  # type: ignore import-position

    lines = parse_code_block(source.read_text())
    async with async_session() as session:
        result = await CodeInventoryService(session).import_codes(plan_id, lines)
    return {
        "inserted": result.inserted_count,
        "submitted": result.total_count,
        "duplicates": result.duplicate_count,
    }


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.plan_id, args.file))
    logger.success("Recharge code import completed", plan_id=str(args.plan_id), **summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
