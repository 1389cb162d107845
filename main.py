"""
Steward — Entry Point.

`python main.py` starts the Telegram bot (and the OAuth callback server
when OAuth is configured).
`python main.py heartbeat <morning_briefing|weekly_review>` runs one
heartbeat pass; schedule it every minute from cron.
"""

import asyncio
import logging
import signal
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from steward.config import load_settings
from steward.data.models import HEARTBEAT_TYPES
from steward.runtime import Runtime

logger = logging.getLogger(__name__)


async def _serve() -> None:
    runtime = Runtime(load_settings())
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runtime.stop)
    await runtime.run_bot()


async def _heartbeat(job_type: str) -> int:
    runtime = Runtime(load_settings())
    stats = await runtime.run_heartbeat(job_type)
    return 1 if stats.failed else 0


def main(argv: list[str]) -> int:
    if len(argv) >= 1 and argv[0] == "heartbeat":
        if len(argv) != 2 or argv[1] not in HEARTBEAT_TYPES:
            print(f"Usage: python main.py heartbeat <{'|'.join(HEARTBEAT_TYPES)}>", file=sys.stderr)
            return 2
        return asyncio.run(_heartbeat(argv[1]))

    try:
        asyncio.run(_serve())
    except Exception:
        logger.exception("Fatal runtime error")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
