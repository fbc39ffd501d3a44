# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Exceptions raised by the streaming codec.

They live in their own module so callers can catch codec failures without
importing the tokenizer, the arena or the codecs themselves.

Two failure kinds are deliberately not represented here:
  - allocation failure is Python's own MemoryError
  - source/sink failure is whatever OSError the caller's stream raised

Both propagate untouched.
"""


class CodecError(Exception):
    """Base for every error the codec raises on its own."""


class FormatError(CodecError, ValueError):
    """
    Raised when input bytes don't follow the matrix or model text format.

    Covers malformed tokens, truncated lines, bad numeric literals, unknown
    solver names and duplicate, missing or out-of-order model keys.
    Subclasses ValueError so code written against plain `float()`/`int()`
    parsing keeps working.
    """


class CodecOverflowError(CodecError, OverflowError):
    """Raised when an index, a count or a weight matrix size is too large to represent."""


class InvalidStateError(CodecError):
    """
    Raised when an object is used out of order.

    Examples: asking a row reader for the next row before the previous row's
    vector was drained, or writing to a closed writer.
    """


class ArenaConsistencyError(AssertionError):
    """
    The arena's element count doesn't match what its builder counted.

    This is an internal bug, never the fault of the input, which is why it
    is an AssertionError and not a CodecError.
    """
