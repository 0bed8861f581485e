"""Worker process for scheduled ledger jobs.

Runs an asyncio loop that expires TOIL grants past their expiry month once
daily.
"""

from __future__ import annotations

import asyncio
import logging

from overtime_ledger.db import get_session_factory

logger = logging.getLogger(__name__)

EXPIRY_INTERVAL_SECONDS = 86400  # 24 hours


async def run_expiry_loop() -> None:
    """Main worker loop that runs TOIL expiration daily."""
    from overtime_ledger.schemas.policy import get_leave_policy
    from overtime_ledger.services.clock import get_clock
    from overtime_ledger.services.toil import run_toil_expiration

    logger.info("Ledger worker started")
    session_factory = get_session_factory()

    while True:
        clock = get_clock()
        today = clock.today()
        logger.info("Running TOIL expiration for %s", today)
        try:
            async with session_factory() as session:
                result = await run_toil_expiration(session, clock=clock, policy=get_leave_policy())
            logger.info(
                "TOIL expiration complete for %s: processed=%d expired_days=%d skipped=%d",
                today,
                result.processed,
                result.expired_days,
                result.skipped,
            )
        except Exception:
            logger.exception("TOIL expiration failed for %s", today)

        await asyncio.sleep(EXPIRY_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_expiry_loop())


if __name__ == "__main__":
    main()
