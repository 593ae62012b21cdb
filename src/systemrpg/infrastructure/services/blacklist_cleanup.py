"""Background pruning of expired token blacklist entries."""

import asyncio

from systemrpg.core.logging import get_logger
from systemrpg.infrastructure.auth.blacklist_store import BlacklistStore

logger = get_logger(__name__)


async def blacklist_cleanup_loop(store: BlacklistStore, interval_seconds: float) -> None:
    """Periodically delete blacklist entries whose tokens have expired.

    Runs until cancelled. Each run is a single transaction; a failed run is
    logged and retried on the next tick.

    Args:
        store: The blacklist store to prune.
        interval_seconds: Delay between runs.
    """
    logger.info("Blacklist cleanup task started", interval_seconds=interval_seconds)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            deleted = await store.prune_expired()
            if deleted > 0:
                logger.info("Blacklist cleanup removed expired entries", deleted=deleted)
        except asyncio.CancelledError:
            logger.info("Blacklist cleanup task stopped")
            break
        except Exception as e:
            logger.warning("Blacklist cleanup error", error=str(e))


def start_blacklist_cleanup(store: BlacklistStore, interval_seconds: float) -> asyncio.Task:
    """Schedule the cleanup loop on the running event loop."""
    return asyncio.create_task(
        blacklist_cleanup_loop(store, interval_seconds), name="blacklist-cleanup"
    )


async def stop_blacklist_cleanup(task: asyncio.Task | None) -> None:
    """Cancel the cleanup loop and wait for it to finish."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
