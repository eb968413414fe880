"""
Per-request metadata about external lookups.

Clients report how a value was obtained (`live`, `cache`, `stale`, `none`) and
when; the API attaches the captured lookups to its response meta so callers can
tell a fresh reverse-geocode from a cached or missing one.
"""

from __future__ import annotations

import contextvars
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass
class LookupMeta:
    lookups: dict[str, dict[str, Any]] = field(default_factory=dict)

    def add(self, name: str, mode: str, **details: Any) -> None:
        if name:
            self.lookups[name] = {"mode": mode, "recorded_at_unix": int(time.time()), **details}


_lookup_meta_var: contextvars.ContextVar[LookupMeta | None] = contextvars.ContextVar(
    "motofinder_lookup_meta", default=None
)


def record_lookup(name: str, mode: str, **details: Any) -> None:
    """Record a lookup outcome if a capture is active; otherwise a no-op."""
    meta = _lookup_meta_var.get()
    if meta is not None:
        meta.add(name, mode, **details)


@contextmanager
def capture_lookup_meta() -> Iterator[LookupMeta]:
    meta = LookupMeta()
    token = _lookup_meta_var.set(meta)
    try:
        yield meta
    finally:
        _lookup_meta_var.reset(token)
