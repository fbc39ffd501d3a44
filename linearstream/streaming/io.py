# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Turn "a filename or an open stream" into the read/write callables the codec uses.

Rules:
  - a str or os.PathLike is a filename: we open it, and we close it again
  - anything with read() / write() is a stream the caller owns: we use it
    and never close it
  - text streams get ASCII text on the write side, since both file formats
    are plain ASCII; on the read side the tokenizer already accepts str
"""

import io
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Union

from linearstream.streaming.tokenizer import ReadFn
from linearstream.streaming.writer import SinkFn
from linearstream.utils.filesystem import atomic_binary_file

FileArg = Union[str, "os.PathLike[str]", Any]


def is_filename(file: FileArg) -> bool:
    return isinstance(file, (str, os.PathLike))


@contextmanager
def open_source(file: FileArg) -> Iterator[ReadFn]:
    """Yield a `read(n)` callable for `file`."""
    if is_filename(file):
        with open(file, "rb") as fp:
            yield fp.read
        return

    read = getattr(file, "read", None)
    if read is None:
        raise TypeError(f"Expected a filename or a readable stream, got {type(file).__name__}")
    yield read


@contextmanager
def open_sink(file: FileArg) -> Iterator[SinkFn]:
    """
    Yield a `write(bytes)` callable for `file`.

    Filenames are written atomically: the target only appears (or gets
    replaced) once the block exits without an error.
    """
    if is_filename(file):
        with atomic_binary_file(Path(file)) as fp:
            yield fp.write
        return

    write = getattr(file, "write", None)
    if write is None:
        raise TypeError(f"Expected a filename or a writable stream, got {type(file).__name__}")

    if isinstance(file, io.TextIOBase):

        def write_text(data: bytes) -> None:
            write(data.decode("ascii"))

        yield write_text
        return

    yield write
