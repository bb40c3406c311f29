"""Per-recipient cache of the most recent inbound image URL.

Written by the message router whenever a user sends an image, read by
any handler that needs "the last image this user sent". Entries expire
after a fixed TTL; an expired entry reads as absent even if no sweep
has removed it yet. Sweeps run after every Nth write and, once
``start()`` is called, from a periodic background task.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import structlog

from .logging_config import mask_id

logger = structlog.get_logger("kohi.router")

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SWEEP_EVERY = 50


@dataclass(frozen=True)
class CachedImage:
    """One cached image; timestamps are Unix seconds."""
    url: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ImageCache:
    """Time-bounded map of recipient id -> latest image.

    Args:
        ttl_seconds: Lifetime of an entry.
        sweep_every: Run a synchronous sweep after this many writes.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
        clock: Callable[[], float] = time.time,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.sweep_every = max(1, sweep_every)
        self._clock = clock
        self._entries: Dict[str, CachedImage] = {}
        self._writes = 0
        self._sweeper: Optional[asyncio.Task] = None

    def record(self, recipient_id: str, url: str) -> CachedImage:
        """Create or overwrite the entry for *recipient_id*."""
        now = self._clock()
        entry = CachedImage(url=url, created_at=now, expires_at=now + self.ttl_seconds)
        self._entries[recipient_id] = entry
        logger.debug("image_cached", sender=mask_id(recipient_id))

        self._writes += 1
        if self._writes % self.sweep_every == 0:
            self.sweep()
        return entry

    def get_entry(self, recipient_id: str) -> Optional[CachedImage]:
        """Return the live entry with its timestamps, or None."""
        entry = self._entries.get(recipient_id)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def get(self, recipient_id: str) -> Optional[str]:
        """Return the cached image URL for *recipient_id*, or None."""
        entry = self.get_entry(recipient_id)
        return entry.url if entry else None

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, v in self._entries.items() if v.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("image_cache_swept", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, recipient_id: object) -> bool:
        return isinstance(recipient_id, str) and self.get_entry(recipient_id) is not None

    # --- Periodic sweep ---

    def start(self, interval_seconds: Optional[float] = None) -> None:
        """Start the periodic sweep task on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        interval = interval_seconds or self.ttl_seconds
        self._sweeper = asyncio.create_task(self._sweep_loop(interval))

    async def stop(self) -> None:
        """Cancel the periodic sweep task."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()
