from __future__ import annotations

import argparse
import asyncio

from platecheck.db import AsyncSessionLocal, engine
from platecheck.logger import logger
from platecheck.services import quota


async def set_plan(*, user_id: str, plan: str) -> None:
    try:
        async with AsyncSessionLocal() as db:
            profile = await quota.set_plan(user_id, plan, db)
    finally:
        await engine.dispose()

    logger.info(
        "Plan set",
        extra={"owner_id": profile.id, "plan": profile.plan, "usage_count": profile.usage_count},
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Set a user's plan. Moving to premium resets the usage counter.",
    )
    parser.add_argument("user_id", help="User id (JWT subject).")
    parser.add_argument("plan", choices=quota.PLANS)
    return parser


def main() -> None:
    args = _build_parser().parse_args()
    asyncio.run(set_plan(user_id=args.user_id, plan=args.plan))


if __name__ == "__main__":
    main()
