"""Append-only sinks for raw claim responses."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Protocol

import orjson

logger = logging.getLogger(__name__)

BUFFER_SIZE = 64 * 1024


class ResponseSink(Protocol):
    def record(self, entry: dict[str, Any]) -> None: ...


class NullSink:
    """Discards everything."""

    def record(self, entry: dict[str, Any]) -> None:
        return None

    def close(self) -> None:
        return None

    def __enter__(self) -> NullSink:
        return self

    def __exit__(self, *args: object) -> None:
        return None


class JsonlFileSink:
    """Writes one JSON line per claim response.

    Lines go into a 64 KiB buffer and reach the disk when it fills or on
    close, so recording costs no syscall per claim on the event loop.
    Write failures are logged and swallowed so a full disk never stalls a job.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._fh = open(self.path, "ab", buffering=BUFFER_SIZE)

    def record(self, entry: dict[str, Any]) -> None:
        line = orjson.dumps({"ts": time.time(), **entry}) + b"\n"
        try:
            self._fh.write(line)
        except OSError as e:
            logger.error("Failed to write response log %s: %s", self.path, e)

    def close(self) -> None:
        try:
            self._fh.close()
        except OSError as e:
            logger.error("Failed to flush response log %s: %s", self.path, e)

    def __enter__(self) -> JsonlFileSink:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def open_sink(path: str | None) -> NullSink | JsonlFileSink:
    if not path:
        return NullSink()
    return JsonlFileSink(path)
