"""Response sinks that streaming exporters write to."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import BinaryIO, Protocol

from gamebench_data.errors import SinkClosed

logger = logging.getLogger(__name__)


class ResponseSink(Protocol):
    """Destination of a streamed response.

    `start` is called once, before the first `write`. A sink whose consumer
    went away raises `SinkClosed` from `write`.
    """

    def start(self, status: int, headers: Mapping[str, str]) -> None: ...

    def write(self, data: bytes) -> None: ...


class BufferSink:
    """Collects the response in memory.

    Args:
        max_bytes: If set, the consumer "disconnects" once this many bytes
            have been written; later writes raise `SinkClosed`.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.status: int | None = None
        self.headers: dict[str, str] = {}
        self.closed = False
        self._max_bytes = max_bytes
        self._chunks: list[bytes] = []
        self._size = 0

    def start(self, status: int, headers: Mapping[str, str]) -> None:
        if self.status is not None:
            raise RuntimeError("response already started")
        self.status = status
        self.headers = dict(headers)

    def write(self, data: bytes) -> None:
        if self.status is None:
            raise RuntimeError("write before start")
        if self.closed:
            raise SinkClosed("client disconnected")
        if self._max_bytes is not None and self._size + len(data) > self._max_bytes:
            self.closed = True
            raise SinkClosed("client disconnected")
        self._chunks.append(bytes(data))
        self._size += len(data)

    def close(self) -> None:
        """Simulate the consumer going away."""
        self.closed = True

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)


class FileSink:
    """Writes the response body to a binary file; status and headers are kept for inspection."""

    def __init__(self, fh: BinaryIO) -> None:
        self.fh = fh
        self.status: int | None = None
        self.headers: dict[str, str] = {}

    def start(self, status: int, headers: Mapping[str, str]) -> None:
        self.status = status
        self.headers = dict(headers)
        logger.debug("Response started: %d %s", status, self.headers)

    def write(self, data: bytes) -> None:
        try:
            self.fh.write(data)
        except (BrokenPipeError, ValueError) as e:
            raise SinkClosed(f"output closed: {e}") from e
