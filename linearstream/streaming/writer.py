# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Buffered writer in front of a caller-supplied sink.

The codecs produce output in tiny pieces ("1.0", " 3:0.5", "\\n"). Calling
the sink's write() for each one would be slow for file objects and
ruinous for sockets or compressors, so we collect bytes into one
fixed-capacity buffer and only hand it over when it's full or when the
writer is closed.

A write larger than the whole buffer skips the buffer and goes straight to
the sink after the pending bytes were flushed. Copying it first would only
cost time.
"""

from collections.abc import Callable
from typing import Optional, Union

from linearstream.config.schema import CodecConfig, resolve_config
from linearstream.errors import InvalidStateError

BytesLike = Union[bytes, bytearray, memoryview]
SinkFn = Callable[[bytes], object]


class BufferedWriter:
    """
    Accumulates bytes and flushes them to `sink` on overflow or close.

    How to use it:
      1. Create it around a write callable
      2. Call write() as often as you like
      3. Call close() (or leave a `with` block) to flush the rest

    The sink is not closed by close(), only forgotten. The writer doesn't
    own it.
    """

    def __init__(self, sink: SinkFn, config: Optional[CodecConfig] = None) -> None:
        cfg = resolve_config(config)
        self._sink: Optional[SinkFn] = sink
        self._capacity = cfg.writer_buffer_size
        self._buffer = bytearray()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._sink is None

    @property
    def pending(self) -> int:
        """Bytes buffered but not yet handed to the sink."""
        return len(self._buffer)

    def write(self, data: BytesLike) -> None:
        if self._sink is None:
            raise InvalidStateError("Buffer writer closed")

        size = len(data)
        if size <= self._capacity - len(self._buffer):
            self._buffer += data
            return

        self.flush()
        if size <= self._capacity:
            self._buffer += data
        else:
            self._sink(bytes(data))

    def flush(self) -> None:
        """Hand every buffered byte to the sink."""
        if self._sink is None:
            raise InvalidStateError("Buffer writer closed")
        if self._buffer:
            chunk = bytes(self._buffer)
            self._buffer.clear()
            self._sink(chunk)

    def close(self) -> None:
        """Flush the remainder and drop the sink. Calling it again does nothing."""
        if self._sink is None:
            return
        try:
            self.flush()
        finally:
            self._sink = None
            self._buffer = bytearray()

    def __enter__(self) -> "BufferedWriter":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        if exc_type is None:
            self.close()
        else:
            # The caller's error wins; whatever is buffered is dropped.
            self._sink = None
            self._buffer = bytearray()
