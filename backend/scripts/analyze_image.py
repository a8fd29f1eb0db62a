from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import os
import sys

from platecheck.client.api import AnalysisClient
from platecheck.client.errors import AnalysisClientError
from platecheck.client.config import client_settings


async def analyze(*, base_url: str, token: str, path: str, interval: float, timeout: float) -> int:
    with open(path, "rb") as f:
        data = f.read()
    content_type = mimetypes.guess_type(path)[0] or "image/jpeg"

    async with AnalysisClient(base_url, token) as client:
        try:
            outcome = await client.analyze(
                data,
                os.path.basename(path),
                content_type,
                interval=interval,
                timeout=timeout,
            )
        except AnalysisClientError as e:
            print(f"{e.code}: {e.message}", file=sys.stderr)
            return 1

    if not outcome.ok:
        print(f"{outcome.error_code or outcome.kind.value}: {outcome.error_message}", file=sys.stderr)
        return 2

    print(json.dumps(outcome.result, indent=2, ensure_ascii=False))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Submit a meal photo and wait for its analysis.",
    )
    parser.add_argument("path", help="Image file to analyze.")
    parser.add_argument("--base-url", default=os.environ.get("PLATECHECK_API_URL", "http://localhost:8000"))
    parser.add_argument("--token", default=os.environ.get("PLATECHECK_TOKEN"), required="PLATECHECK_TOKEN" not in os.environ)
    parser.add_argument("--interval", type=float, default=client_settings.POLL_INTERVAL_SECONDS)
    parser.add_argument("--timeout", type=float, default=client_settings.POLL_TIMEOUT_SECONDS)
    return parser


def main() -> None:
    args = _build_parser().parse_args()
    raise SystemExit(
        asyncio.run(
            analyze(
                base_url=args.base_url,
                token=args.token,
                path=args.path,
                interval=args.interval,
                timeout=args.timeout,
            )
        )
    )


if __name__ == "__main__":
    main()
