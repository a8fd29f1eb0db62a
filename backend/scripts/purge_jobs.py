from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select

from platecheck.db import AsyncSessionLocal
from platecheck.logger import logger
from platecheck.models import AnalysisJob as AnalysisJobModel


def _cutoff(older_than_days: Optional[int]) -> Optional[datetime]:
    if older_than_days is None:
        return None
    return datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=older_than_days)


async def _count_jobs(cutoff: Optional[datetime]) -> int:
    query = select(func.count()).select_from(AnalysisJobModel)
    if cutoff is not None:
        query = query.where(AnalysisJobModel.created_at < cutoff)
    async with AsyncSessionLocal() as db:
        return int((await db.execute(query)).scalar_one())


async def purge_jobs(*, yes: bool, older_than_days: Optional[int]) -> None:
    cutoff = _cutoff(older_than_days)
    before = await _count_jobs(cutoff)
    logger.warning(
        "Purge analysis jobs requested",
        extra={"matching_jobs": before, "cutoff": cutoff.isoformat() if cutoff else None},
    )

    if not yes:
        raise SystemExit(
            "Refusing to run without --yes. "
            f"This will DELETE {before} analysis job(s)."
        )

    stmt = delete(AnalysisJobModel)
    if cutoff is not None:
        stmt = stmt.where(AnalysisJobModel.created_at < cutoff)

    async with AsyncSessionLocal() as db:
        await db.execute(stmt)
        await db.commit()

    after = await _count_jobs(cutoff)
    logger.warning(
        "Purge analysis jobs completed",
        extra={"deleted": before - after, "remaining_matching": after},
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delete analysis jobs from the database (all of them, or only old ones).",
    )
    parser.add_argument(
        "--older-than-days",
        type=int,
        default=None,
        help="Only delete jobs created more than this many days ago.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm destructive action (required).",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    asyncio.run(purge_jobs(yes=bool(args.yes), older_than_days=args.older_than_days))


if __name__ == "__main__":
    main()
