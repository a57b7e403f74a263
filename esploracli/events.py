"""Progress event sinks for esploracli.

Fetchers and flows report progress by handing small dicts to an EventSink.
The sink is a side channel: nothing it receives influences return values,
so retry and pagination logic can be tested without capturing output.

Every event carries:
  type   — "fetch_attempt", "fetch_exhausted", "tx_page", "block_txs_complete",
           "tx_count_mismatch", "mempool_unavailable", "address_txs", ...
  level  — "info" | "warn" | "error"

JsonlEventSink writes one JSON object per line to stderr and flushes after
every write. stdout is reserved for the result object.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import IO, Any, Protocol, runtime_checkable


@runtime_checkable
class EventSink(Protocol):
    """Anything that accepts progress events."""

    def emit(self, event: dict[str, Any]) -> None:
        ...


class JsonlEventSink:
    """Write events as JSONL to a text stream (stderr by default)."""

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream

    def emit(self, event: dict[str, Any]) -> None:
        stream = self._stream or sys.stderr
        record = {"timestamp": _now_iso(), **event}
        stream.write(json.dumps(record, default=str) + "\n")
        stream.flush()


class NullEventSink:
    """Discard all events (used by --quiet)."""

    def emit(self, event: dict[str, Any]) -> None:
        return None


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()
