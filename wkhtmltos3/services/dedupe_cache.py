# services/dedupe_cache.py
"""
In-memory record of recently accepted jobs, used to drop duplicate queue
messages. Local to this process; nothing is shared between workers.

Keys are canonical job serializations. An entry is inserted when a job is
accepted and removed again only when that job fails, so a redelivered
message for a failed job is retried. Successful jobs stay until they age
out (max age from insertion) or are evicted (least recently used first).

The window is independent of the queue's visibility timeout, so a message
redelivered right as its entry expires can still be processed twice.
"""

import time
from collections import OrderedDict
from typing import Callable, Optional

from wkhtmltos3.core.config import settings
from wkhtmltos3.core.logger import logger


class DedupeCache:

    def __init__(
        self,
        max_entries: Optional[int] = None,
        max_age_secs: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = settings.DEDUPE_MAX_ENTRIES if max_entries is None else max_entries
        self.max_age_secs = settings.DEDUPE_MAX_AGE_SECS if max_age_secs is None else max_age_secs
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self.max_entries > 0 and self.max_age_secs > 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        self._expire()
        return key in self._entries

    def should_skip(self, key: str) -> bool:
        """True when an identical job was accepted within the window."""
        if not self.enabled:
            return False
        self._expire()
        if key not in self._entries:
            return False
        self._entries.move_to_end(key)
        return True

    def mark_in_flight(self, key: str) -> None:
        if not self.enabled:
            return
        self._entries[key] = self._clock()
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("dedupe evicted %.80s", evicted)

    def release(self, key: str) -> None:
        """Forget a failed job so a redelivery is processed again."""
        self._entries.pop(key, None)

    def _expire(self) -> None:
        cutoff = self._clock() - self.max_age_secs
        expired = [key for key, inserted_at in self._entries.items() if inserted_at <= cutoff]
        for key in expired:
            del self._entries[key]
