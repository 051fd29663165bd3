import asyncio
import logging

from .metrics import inc_purged
from .storage import MessageStore


logger = logging.getLogger("otm")


async def sweep_once(store: MessageStore) -> int:
    purged = await asyncio.to_thread(store.purge_expired)
    inc_purged(purged)
    return purged


async def run_sweeper(store: MessageStore, interval_seconds: float) -> None:
    """Purge expired messages every `interval_seconds` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await sweep_once(store)
        except Exception:
            # next tick tries again
            logger.exception("expiry sweep failed")
