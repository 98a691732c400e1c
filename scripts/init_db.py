#!/usr/bin/env python3
"""Create the telemetry tables without starting the server."""

import asyncio
import sys

from quakebridge.config import get_settings
from quakebridge.infra.db.sqlite import init_db


async def main() -> None:
    settings = get_settings()
    result = await init_db(settings=settings)
    print(f"[init_db] schema ready at {result['db_path']}")
    for name in result["tables"]:
        print(f"[init_db]  - {name}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except Exception as exc:
        print(f"[init_db] failed: {exc}", file=sys.stderr)
        sys.exit(1)
