# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Incremental tokenizer over a pull-based byte source.

The matrix and model formats are both "whitespace separated words, one
record per line". The tokenizer turns whatever `read(n)` hands it into a
stream of those words plus explicit end-of-line markers, without ever
holding more than the chunks the current word spans.

How it works:
  - We ask the source for `tokenizer_buffer_size` bytes at a time. Short
    reads are fine; an empty read means EOF.
  - A word that lies inside one chunk comes back as a memoryview slice of
    that chunk (no copy). A word cut in two by a chunk boundary is joined
    into a fresh bytes object, and the chunks it used up are dropped.
  - Lines may end in \\n, \\r or \\r\\n. The CR handling is a small state
    machine: a bare \\r only becomes a line end once we see what follows it.

Note that "\\r\\r" followed by end of input yields a single EOL for the two
line breaks: the line-signalled flag swallows the trailing empty line.
"""

import re
from collections.abc import Callable
from typing import NamedTuple, Optional, Union

from linearstream.config.schema import CodecConfig, resolve_config
from linearstream.errors import FormatError
from linearstream.streaming.iterator import PullIterator

Chunk = Union[bytes, bytearray, memoryview, str]
ReadFn = Callable[[int], Chunk]

_SPACE = 0x20
_TAB = 0x09
_LF = 0x0A
_CR = 0x0D
_NUL = 0x00

# Any of these ends a token. NUL is included so the fast path finds it and
# can reject it.
_TOKEN_END = re.compile(rb"[ \t\r\n\x00]")


class Token(NamedTuple):
    """
    One lexical unit.

    `data` is a memoryview into a live input chunk when `owned` is False,
    or a bytes object of its own when the token spanned several chunks.
    The end-of-line marker has `data=None`.
    """

    data: Optional[Union[bytes, memoryview]]
    owned: bool

    @property
    def is_eol(self) -> bool:
        return self.data is None

    def tobytes(self) -> bytes:
        if self.data is None:
            return b""
        return bytes(self.data)


EOL = Token(None, False)


class Tokenizer(PullIterator):
    """
    Pull iterator yielding Token values, EOL markers, and finally None.

    The source is never closed here. Whoever opened it closes it.
    """

    def __init__(self, read: ReadFn, config: Optional[CodecConfig] = None) -> None:
        super().__init__()
        cfg = resolve_config(config)
        self._read: Optional[ReadFn] = read
        self._chunk_size = cfg.tokenizer_buffer_size

        # Chunks the pending token spans, oldest first; the last one is
        # the chunk being scanned.
        self._bufs: list[bytes] = []
        self._pos = 0
        self._start = 0

        self._in_token = False
        self._pending_cr = False
        self._at_eof = False
        # Nothing has been read yet, so there is no open line to close.
        self._line_signalled = True

    def _advance(self) -> Optional[Token]:
        while True:
            token = self._scan()
            if token is not None:
                return token

            if self._at_eof:
                if self._in_token:
                    return self._materialize(len(self._bufs[-1]))
                if not self._line_signalled:
                    self._line_signalled = True
                    return EOL
                self._bufs.clear()
                return None

            self._fill()

    def _fill(self) -> None:
        if self._read is None:
            self._at_eof = True
            return

        chunk = self._read(self._chunk_size)
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        elif not isinstance(chunk, bytes):
            # Mutable buffers could change under a borrowed token.
            chunk = bytes(chunk)

        if not chunk:
            self._at_eof = True
            return

        self._bufs.append(chunk)
        self._pos = 0

    def _scan(self) -> Optional[Token]:
        """Scan the current chunk. None means "need more input"."""
        if not self._bufs:
            return None

        buf = self._bufs[-1]
        pos = self._pos
        end = len(buf)

        while pos < end:
            if self._in_token:
                match = _TOKEN_END.search(buf, pos)
                if match is None:
                    pos = end
                    break
                pos = match.start()
                if buf[pos] == _NUL:
                    raise FormatError("Unexpected \\0 byte in token")
                return self._materialize(pos)

            byte = buf[pos]
            pos += 1

            if byte == _SPACE or byte == _TAB or byte == _NUL:
                if self._pending_cr:
                    return self._end_line(pos, clear_cr=True)
            elif byte == _LF:
                return self._end_line(pos, clear_cr=True)
            elif byte == _CR:
                if self._pending_cr:
                    return self._end_line(pos, clear_cr=False)
                self._pending_cr = True
            else:
                self._in_token = True
                self._start = pos - 1
                if self._pending_cr:
                    return self._end_line(pos, clear_cr=True)

        self._pos = pos
        if not self._in_token:
            self._bufs.clear()
        return None

    def _end_line(self, pos: int, clear_cr: bool) -> Token:
        self._line_signalled = True
        if clear_cr:
            self._pending_cr = False
        self._pos = pos
        return EOL

    def _materialize(self, pos: int) -> Token:
        bufs = self._bufs
        if len(bufs) == 1:
            token = Token(memoryview(bufs[0])[self._start:pos], False)
        else:
            parts: list[Union[bytes, memoryview]] = [memoryview(bufs[0])[self._start:]]
            parts.extend(bufs[1:-1])
            parts.append(memoryview(bufs[-1])[:pos])
            token = Token(b"".join(parts), True)
            # Everything but the chunk we're scanning is fully consumed.
            del bufs[:-1]

        self._pos = pos
        self._in_token = False
        self._line_signalled = False
        return token

    def _dispose(self) -> None:
        self._bufs.clear()
        self._read = None

    def _resources(self) -> list[object]:
        owned: list[object] = [] if self._read is None else [self._read]
        owned.extend(self._bufs)
        return owned
