"""Payflow Sweeper - Fund sweeping tasks.

Tasks for sweeping funds from merchant wallets to the treasury.
"""

import logging

from redis.exceptions import LockError

from payflow.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="payflow.workers.tasks.sweeper.sweep_funds")
def sweep_funds():
    """Sweep funds from merchant wallets to the treasury."""
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(sweep_once())
        logger.info(f"Sweep complete: {result}")
        return result
    finally:
        loop.close()


async def sweep_once() -> dict:
    """One pass, single-flight across workers via a Redis lock.

    Returns:
        Dict with sweep statistics, or {"skipped": True} if another pass holds the lock
    """
    from payflow.core.config import get_settings
    from payflow.core.redis import close_redis, get_sweep_lock, init_redis
    from payflow.services.context import build_context

    settings = get_settings()
    context = build_context(settings)
    await init_redis()
    try:
        lock = get_sweep_lock(settings.sweep_lock_timeout_seconds)
        if not await lock.acquire():
            logger.warning("Previous sweep still running; skipping this tick")
            return {"skipped": True}

        try:
            scheduler = await context.scheduler()
            accounts = await context.custody.list_accounts()
            report = await scheduler.run_once(accounts)
        finally:
            try:
                await lock.release()
            except LockError as e:
                logger.warning(f"Sweep lock expired before release: {e}")

        return {
            "skipped": False,
            "wallets_processed": len(report.outcomes),
            "successful": len(report.successful),
            "skipped_wallets": len(report.skipped),
            "failed": len(report.failed),
            "usdc_swept": str(report.total_swept),
        }
    finally:
        await context.close()
        await close_redis()
