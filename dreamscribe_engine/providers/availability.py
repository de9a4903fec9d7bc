import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence


logger = logging.getLogger(__name__)


# probe(api_key, model) -> True when the model is reachable with that key
Probe = Callable[[str, str], bool]


@dataclass(frozen=True)
class _Entry:
    checked_at: float
    models: FrozenSet[str]


class AvailabilityCache:
    """
    Per-credential record of which candidate models answered a probe.

    Within the TTL a lookup filters the candidates against the cached set
    without touching the network. On a miss or after expiry every candidate
    is probed concurrently and the entry is replaced wholesale, even when no
    model answered. Two callers racing on an expired entry may both probe;
    the last writer wins.
    """

    def __init__(
        self,
        probe: Probe,
        ttl: float = 60 * 60,
        clock: Callable[[], float] = time.monotonic,
        max_workers: int = 6,
    ) -> None:
        self._probe = probe
        self.ttl = ttl
        self._clock = clock
        self._max_workers = max_workers
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _fresh_entry(self, api_key: str) -> Optional[_Entry]:
        with self._lock:
            entry = self._entries.get(api_key)
        if entry is not None and self._clock() - entry.checked_at < self.ttl:
            return entry
        return None

    def _safe_probe(self, api_key: str, model: str) -> bool:
        try:
            return bool(self._probe(api_key, model))
        except Exception as e:
            # An unanswerable probe means "not available"; keep checking the rest.
            logger.debug("availability_probe_error model=%s error=%s", model, e)
            return False

    def _probe_all(self, api_key: str, candidates: Sequence[str]) -> FrozenSet[str]:
        models = [m for m in dict.fromkeys(candidates) if m]
        if not models:
            return frozenset()
        workers = max(1, min(self._max_workers, len(models)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="availability-probe") as pool:
            answers = list(pool.map(lambda m: self._safe_probe(api_key, m), models))
        return frozenset(m for m, ok in zip(models, answers) if ok)

    def filter_available(self, api_key: str, candidates: Sequence[str]) -> List[str]:
        entry = self._fresh_entry(api_key)
        if entry is None:
            started = self._clock()
            available = self._probe_all(api_key, candidates)
            entry = _Entry(checked_at=started, models=available)
            with self._lock:
                self._entries[api_key] = entry
            logger.info("availability_probed candidates=%s available=%s", len(candidates), sorted(available))
        else:
            logger.debug("availability_cache_hit candidates=%s", len(candidates))
        return [m for m in candidates if m in entry.models]

    def invalidate(self, api_key: Optional[str] = None) -> None:
        with self._lock:
            if api_key is None:
                self._entries.clear()
            else:
                self._entries.pop(api_key, None)
