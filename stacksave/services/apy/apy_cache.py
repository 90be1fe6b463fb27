#!/usr/bin/env python3
"""
Time-bounded APY cache.

Entries are (apy, fetched_at) pairs. A miss or a stale entry triggers the
protocol's fetcher; a failing fetcher is logged and the fallback APY is
cached in its place, so callers never see a fetch error.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("stacksave.apy")

Fetcher = Callable[[], float]


class APYCache:
    def __init__(
        self,
        fetchers: Dict[str, Fetcher],
        ttl_seconds: float = 600,
        fallback_apy: float = 5.0,
        clock: Callable[[], float] = time.time,
        max_workers: int = 4,
    ):
        self.fetchers = dict(fetchers)
        self.ttl_seconds = ttl_seconds
        self.fallback_apy = fallback_apy
        self.clock = clock
        self.max_workers = max_workers

        self._cache: Dict[str, Tuple[float, float]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _fresh(self, protocol_id: str) -> Optional[float]:
        entry = self._cache.get(protocol_id)
        if entry is None:
            return None
        apy, fetched_at = entry
        if self.clock() - fetched_at < self.ttl_seconds:
            return apy
        return None

    def _lock_for(self, protocol_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(protocol_id)
            if lock is None:
                lock = self._locks[protocol_id] = threading.Lock()
            return lock

    def get_apy(self, protocol_id: str) -> float:
        """Current APY percentage for a protocol."""
        cached = self._fresh(protocol_id)
        if cached is not None:
            return cached

        # one fetch per protocol at a time; waiters reuse its result
        with self._lock_for(protocol_id):
            cached = self._fresh(protocol_id)
            if cached is not None:
                return cached

            fetcher = self.fetchers.get(protocol_id)
            if fetcher is None:
                logger.warning(f"[APY] Unknown protocol {protocol_id}, using fallback {self.fallback_apy}")
                apy = self.fallback_apy
            else:
                try:
                    apy = float(fetcher())
                except Exception as e:
                    logger.error(f"[APY] Fetch failed for {protocol_id}: {e}")
                    apy = self.fallback_apy

            self._cache[protocol_id] = (apy, self.clock())
            return apy

    def get_batch_apy(self, protocol_ids: List[str]) -> Dict[str, float]:
        """APY for several protocols, fetched concurrently."""
        ids = list(dict.fromkeys(protocol_ids))
        if not ids:
            return {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as executor:
            results = executor.map(self.get_apy, ids)
            return dict(zip(ids, results))

    def clear_cache(self, protocol_id: Optional[str] = None):
        if protocol_id:
            self._cache.pop(protocol_id, None)
        else:
            self._cache.clear()
        logger.info(f"[APY] Cache cleared ({protocol_id or 'all'})")
