# Overview: Memoized event replay per register, keyed by the register's newest event id.

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Any, Callable, Hashable


class ReplayCache:
    """
    Small LRU of replayed session states.

    Keys are (register_id, last_event_id). A new event always gets a larger
    local id, so a stale entry can never be hit; invalidate() only frees the
    memory early. Cash-sale contributions are not part of the cached value.
    """

    def __init__(self, max_entries: int = 1024, enabled: bool = True):
        self.max_entries = max_entries
        self.enabled = enabled
        self._entries: OrderedDict[tuple, Any] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def init_app(self, app) -> None:
        self.enabled = app.config.get("LEDGER_CACHE_ENABLED", True)
        self.max_entries = app.config.get("LEDGER_CACHE_MAX_ENTRIES", 1024)
        app.extensions["cashledger.replay_cache"] = self

    def get_or_compute(self, register_id: int, last_event_id: Hashable, compute: Callable[[], Any]) -> Any:
        if not self.enabled:
            return compute()

        key = (register_id, last_event_id)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self.hits += 1
                return self._entries[key]
            self.misses += 1

        value = compute()

        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return value

    def invalidate(self, register_id: int) -> None:
        with self._lock:
            for key in [k for k in self._entries if k[0] == register_id]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)
