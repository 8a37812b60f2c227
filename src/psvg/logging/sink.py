"""NDJSON event log kept under ``<project>/logs/events.ndjson``.

One event per line, keys sorted.  Appends take an exclusive ``flock`` and
reads a shared one, so a preview server and a CLI run can log to the same
project at once.  Where ``fcntl`` is unavailable the locks are no-ops.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from psvg.logging.events import PsvgEvent

try:
    import fcntl
except ImportError:  # Windows
    fcntl = None  # type: ignore[assignment]

LOG_FILENAME = "events.ndjson"

_DEFAULT_TAIL_BYTES = 2_097_152
_READ_CAP = 2000


@contextmanager
def _flock(fd: int, exclusive: bool) -> Iterator[None]:
    if fcntl is None:
        yield
        return
    fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    try:
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)


class EventSink:
    """Writes and queries the event log of one project directory.

    Args:
        project_dir: Directory holding the descriptions and ``psvg.yaml``.
        fsync: Flush every append to disk.
        tail_bytes: Only this many trailing bytes are scanned by reads.
    """

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self.path = self.logs_dir / LOG_FILENAME
        self.fsync = fsync
        self.tail_bytes = _DEFAULT_TAIL_BYTES if tail_bytes is None else tail_bytes

    def write(self, event: PsvgEvent) -> None:
        """Append *event* as one JSON line."""
        payload = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
        try:
            with _flock(fd, exclusive=True):
                os.write(fd, (payload + "\n").encode("utf-8"))
                if self.fsync:
                    os.fsync(fd)
        finally:
            os.close(fd)

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        source: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Return matching events, newest first, at most *limit* (capped at 2000)."""
        limit = min(limit, _READ_CAP)
        wanted = {"level": level, "event_type": event_type}
        matched: list[dict[str, Any]] = []
        if limit <= 0:
            return matched
        for evt in reversed(list(self._events())):
            if any(v and evt.get(k) != v for k, v in wanted.items()):
                continue
            if source and (evt.get("context") or {}).get("source") != source:
                continue
            matched.append(evt)
            if len(matched) >= limit:
                break
        return matched

    def _events(self) -> Iterator[dict[str, Any]]:
        """Yield the events in the scanned tail, skipping unreadable lines."""
        for raw in self._tail().splitlines():
            if not raw.strip():
                continue
            try:
                yield json.loads(raw)
            except json.JSONDecodeError:
                continue

    def _tail(self) -> str:
        if not self.path.exists():
            return ""
        with open(self.path, "rb") as f, _flock(f.fileno(), exclusive=False):
            size = os.fstat(f.fileno()).st_size
            start = max(0, size - self.tail_bytes)
            f.seek(start)
            data = f.read()
        if start:
            # first line is cut off
            data = data.partition(b"\n")[2]
        return data.decode("utf-8", errors="replace")
