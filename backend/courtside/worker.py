"""
Expiry sweeper entry point (`courtside-sweep`).

Runs one pass and exits, for cron or a Kubernetes CronJob; `--loop` keeps
sweeping every SWEEP_INTERVAL_SECONDS for deployments that run the sweeper
outside the API process (set SWEEPER_ENABLED=false on the API then).
"""

import argparse
import asyncio

from courtside.core.config import get_settings
from courtside.core.logging import get_logger, setup_logging
from courtside.db.session import async_session_factory, engine
from courtside.services.expiry_service import run_sweeper, sweep_expired_payments
from courtside.services.strategy_factory import close_collaborators, get_notifier


async def _run(loop: bool, interval: int) -> int:
    try:
        if loop:
            await run_sweeper(async_session_factory, interval, get_notifier)
            return 0
        return await sweep_expired_payments(async_session_factory, notifier=get_notifier())
    finally:
        await close_collaborators()
        await engine.dispose()


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Expire overdue payment obligations")
    parser.add_argument("--loop", action="store_true", help="keep sweeping instead of a single pass")
    parser.add_argument("--interval", type=int, default=settings.SWEEP_INTERVAL_SECONDS)
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL for this run")
    args = parser.parse_args()

    setup_logging(args.log_level)
    expired = asyncio.run(_run(args.loop, args.interval))
    get_logger(__name__).info("sweep_finished", expired=expired)


if __name__ == "__main__":
    main()
