# cablenet/cache.py
"""
Content-hash keyed result cache.

Re-evaluation cycles in a host application (slider drags, UI refreshes)
often rebuild the exact same network or rerun the exact same solve. The
cache maps a hash of the INPUTS to the previous result:

    key = content_hash(segments, anchors, tolerances)
    network = cache.get_or_compute(key, lambda: build_network(...))

It lives outside the kernel: no core type holds a "last result" field.
"""

import hashlib
import json
import threading
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

import numpy as np

from .config import CONFIG


def _default(obj):
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.floating, np.integer)):
        return obj.item()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    # Opaque objects (edge sources etc.) contribute their repr
    return repr(obj)


def content_hash(*parts: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of `parts`."""
    payload = json.dumps(parts, sort_keys=True, default=_default, separators=(',', ':'))
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


class ResultCache:
    """
    Bounded LRU mapping content hash -> result. Thread-safe.

    Parameters:
    -----------
    maxsize : int
        Entries kept before the least recently used one is evicted
        (default CONFIG.cache_size)
    """

    def __init__(self, maxsize: Optional[int] = None):
        self.maxsize = CONFIG.cache_size if maxsize is None else int(maxsize)
        self._data: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
                self.hits += 1
                return self._data[key]
            self.misses += 1
            return default

    def put(self, key: Hashable, value: Any) -> None:
        if self.maxsize <= 0:
            return
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """
        Cached value for `key`, computing and storing it on a miss.

        `compute` runs outside the lock; exceptions propagate and nothing
        is stored.
        """
        sentinel = object()
        value = self.get(key, sentinel)
        if value is not sentinel:
            return value
        value = compute()
        self.put(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0
