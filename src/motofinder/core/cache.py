from __future__ import annotations

import contextvars
import json
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from hashlib import sha256
from pathlib import Path
from typing import Any, Iterator

"""
On-disk JSON cache for external lookups.

Each entry is one JSON file holding the value plus its write time and TTL. The TTL
is checked on read, and an expired entry stays readable through `get_stale` so a
lookup can degrade to old data when the upstream service is down.

The reverse geocoder is the main user: one place should be looked up once, not
once per search.
"""


@dataclass
class CacheStats:
    """Cache counters for one request (see `record_cache_stats`)."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    sets: int = 0
    stale_reads: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


_stats_var: contextvars.ContextVar[CacheStats | None] = contextvars.ContextVar("motofinder_cache_stats", default=None)


def _count(*fields: str) -> None:
    stats = _stats_var.get()
    if stats is None:
        return
    for name in fields:
        setattr(stats, name, getattr(stats, name) + 1)


@contextmanager
def record_cache_stats() -> Iterator[CacheStats]:
    """Collect cache counters for the code run inside the block (task-local)."""
    stats = CacheStats()
    token = _stats_var.set(stats)
    try:
        yield stats
    finally:
        _stats_var.reset(token)


@dataclass(frozen=True)
class CacheEntry:
    created_at_unix: int
    ttl_seconds: int
    value: Any

    def is_expired(self, ttl_seconds: int | None = None) -> bool:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return int(time.time()) - self.created_at_unix > ttl


class FileCache:
    """Filesystem cache addressed by (namespace, key)."""

    def __init__(self, base_dir: Path, enabled: bool = True, default_ttl_seconds: int = 86400):
        self._base_dir = Path(base_dir)
        self._enabled = enabled
        self._default_ttl_seconds = default_ttl_seconds

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _path(self, namespace: str, key: str) -> Path:
        # Hashed names keep arbitrary keys (coordinates, URLs) filesystem-safe.
        name = sha256(f"{namespace}:{key}".encode("utf-8")).hexdigest()
        return self._base_dir / namespace / f"{name}.json"

    def _load(self, namespace: str, key: str) -> CacheEntry | None:
        if not self._enabled:
            return None
        path = self._path(namespace, key)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry(int(raw["created_at_unix"]), int(raw["ttl_seconds"]), raw["value"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError):
            # Unreadable or half-written entry: behave as a miss.
            return None

    def get_entry_meta(self, namespace: str, key: str) -> dict[str, int] | None:
        """Return `created_at_unix` / `ttl_seconds` of an entry, expired or not."""
        entry = self._load(namespace, key)
        if entry is None:
            return None
        return {"created_at_unix": entry.created_at_unix, "ttl_seconds": entry.ttl_seconds}

    def get(self, namespace: str, key: str, ttl_seconds: int | None = None) -> Any | None:
        """Return the cached value, or None when missing or older than its TTL.

        `ttl_seconds` overrides the TTL stored with the entry.
        """
        if not self._enabled:
            return None
        entry = self._load(namespace, key)
        if entry is None:
            _count("misses")
            return None
        if entry.is_expired(ttl_seconds):
            _count("misses", "expired")
            return None
        _count("hits")
        return entry.value

    def get_stale(self, namespace: str, key: str) -> Any | None:
        """Return the cached value regardless of age (fallback on upstream errors)."""
        entry = self._load(namespace, key)
        if entry is None or entry.value is None:
            return None
        _count("stale_reads")
        return entry.value

    def set(self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self._enabled:
            return
        entry = CacheEntry(
            created_at_unix=int(time.time()),
            ttl_seconds=int(self._default_ttl_seconds if ttl_seconds is None else ttl_seconds),
            value=value,
        )
        path = self._path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so readers never see a partial file.
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(entry), ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
        _count("sets")
