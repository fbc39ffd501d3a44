# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Numeric token parsing and formatting shared by the matrix and model codecs.

Parsing has to consume the whole token. Python's float() and int() are more
forgiving than the C library functions the file formats were defined
against: they skip surrounding whitespace (including \\v and \\f, which the
tokenizer keeps inside tokens) and accept "1_000". Both are rejected here.

Formatting uses repr(), which is the shortest string that reads back to the
identical float.
"""

from typing import Union

from linearstream.errors import CodecOverflowError, FormatError

INT32_MAX = 2**31 - 1
INT32_MIN = -(2**31)

Span = Union[bytes, bytearray, memoryview]


def _checked_bytes(span: Span, what: str) -> bytes:
    raw = bytes(span)
    if not raw:
        raise FormatError(f"Empty {what}")
    if b"_" in raw or raw[:1].isspace() or raw[-1:].isspace():
        raise FormatError(f"Invalid {what}: {raw!r}")
    return raw


def parse_float(span: Span, what: str = "number") -> float:
    raw = _checked_bytes(span, what)
    try:
        return float(raw)
    except ValueError:
        raise FormatError(f"Invalid {what}: {raw!r}") from None


def parse_int(span: Span, what: str = "integer") -> int:
    """Parse a base-10 int32. Values outside the int32 range raise CodecOverflowError."""
    raw = _checked_bytes(span, what)
    try:
        value = int(raw)
    except ValueError:
        raise FormatError(f"Invalid {what}: {raw!r}") from None
    if value > INT32_MAX or value < INT32_MIN:
        raise CodecOverflowError(f"{what} out of range: {value}")
    return value


def parse_index(span: Span) -> int:
    index = parse_int(span, "feature index")
    if index <= 0:
        raise FormatError(f"Feature index must be > 0, got {index}")
    return index


def format_float(value: float) -> str:
    return repr(float(value))
