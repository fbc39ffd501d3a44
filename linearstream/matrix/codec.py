# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Text codec for sparse feature matrices.

The format is the one liblinear's command line tools read:

    <label> <index>:<value> <index>:<value> ...\\n

one row per line, indices strictly increasing and > 0. Reading accepts
\\n, \\r and \\r\\n line endings; writing always emits \\n.

Reading is two nested pull iterators over one tokenizer:

    MatrixRowReader.advance() -> (label, VectorReader)
    VectorReader.advance()    -> FeatureNode ... None at end of line

The row reader refuses to move on while the previous row's VectorReader
still has nodes left, since both share the same token stream.
"""

import logging
from typing import Any, Optional, Union

from linearstream.config.loader import ConfigSource, codec_config
from linearstream.config.schema import CodecConfig
from linearstream.errors import FormatError, InvalidStateError
from linearstream.logging.logger import apply_config, get_logger
from linearstream.matrix.core import FeatureMatrix
from linearstream.matrix.vector import FeatureNode
from linearstream.streaming.io import open_sink, open_source
from linearstream.streaming.iterator import PullIterator
from linearstream.streaming.numbers import format_float, parse_float, parse_index
from linearstream.streaming.tokenizer import Tokenizer
from linearstream.streaming.writer import BufferedWriter

logger: logging.Logger = get_logger(__name__)


def parse_feature(data: Union[bytes, memoryview]) -> FeatureNode:
    """Parse one `<index>:<value>` token. Both halves must be consumed entirely."""
    raw = bytes(data)
    index, sep, value = raw.partition(b":")
    if not sep:
        raise FormatError(f"Expected <index>:<value>, got {raw!r}")
    return FeatureNode(parse_index(index), parse_float(value, "feature value"))


class VectorReader(PullIterator):
    """
    Yields the feature nodes of one row, then None at the end of the line.

    Zero values are skipped. An index that isn't larger than the one before
    it is a FormatError, even when one of the two values was zero.
    """

    def __init__(self, owner: "MatrixRowReader") -> None:
        super().__init__()
        self._owner: Optional[MatrixRowReader] = owner
        self._last_index = 0

    def _advance(self) -> Optional[FeatureNode]:
        owner = self._owner
        if owner is None:
            return None

        while True:
            token = owner.tokens.advance()
            # A conforming tokenizer always sends EOL before running dry,
            # but a plain end of stream closes the row just as well.
            if token is None or token.is_eol:
                owner.row_finished(self)
                self._owner = None
                return None

            node = parse_feature(token.data)
            if node.index <= self._last_index:
                raise FormatError(
                    f"Feature indices must be increasing: {node.index} after {self._last_index}"
                )
            self._last_index = node.index
            if node.value != 0.0:
                return node

    def _dispose(self) -> None:
        self._owner = None


class MatrixRowReader(PullIterator):
    """
    Pull iterator over the rows of a matrix stream.

    States are "expecting a label" (no open VectorReader) and "inside a
    row" (a VectorReader is handed out and not drained yet). Disposing the
    row reader disposes the tokenizer.
    """

    def __init__(self, tokens: PullIterator) -> None:
        super().__init__()
        self.tokens = tokens
        self._vector: Optional[VectorReader] = None

    def _advance(self) -> Optional[tuple[float, VectorReader]]:
        if self._vector is not None:
            raise InvalidStateError("Previous row's vector has not been read to the end")

        token = self.tokens.advance()
        if token is None:
            return None
        if token.is_eol:
            raise FormatError("Expected a label, got an empty line")

        label = parse_float(token.data, "label")
        self._vector = VectorReader(self)
        return label, self._vector

    def row_finished(self, vector: VectorReader) -> None:
        if self._vector is vector:
            self._vector = None

    def _dispose(self) -> None:
        if self._vector is not None:
            self._vector.dispose()
        self.tokens.dispose()

    def _resources(self) -> list[object]:
        owned: list[object] = [self.tokens]
        if self._vector is not None:
            owned.append(self._vector)
        return owned


def read_rows(read: Any, config: Optional[CodecConfig] = None) -> MatrixRowReader:
    """Wrap a `read(n)` callable in a tokenizer and a row reader."""
    return MatrixRowReader(Tokenizer(read, config))


def load_matrix(file: Any, config: ConfigSource = None) -> FeatureMatrix:
    """
    Read a FeatureMatrix from a filename or a readable stream.

    Args:
        file: Path (opened and closed here) or an object with read().
        config: A CodecConfig, a path to a YAML config file, or None for defaults.

    Returns:
        The decoded matrix.

    Raises:
        FormatError: Malformed label, feature token or row layout.
        CodecOverflowError: An index or the row count is out of range.
        OSError: Whatever the source raised.
    """
    cfg = codec_config(config)
    apply_config(logger, cfg)

    with open_source(file) as read:
        matrix = FeatureMatrix.from_rows(read_rows(read, cfg), cfg)

    logger.info("Matrix loaded", extra={"height": matrix.height, "width": matrix.width})
    return matrix


def _write_row(writer: BufferedWriter, label: float, vector: Any) -> None:
    writer.write(format_float(label).encode("ascii"))
    for index, value in vector:
        writer.write(f" {index}:{format_float(value)}".encode("ascii"))
    writer.write(b"\n")


def save_matrix(matrix: FeatureMatrix, file: Any, config: ConfigSource = None) -> None:
    """
    Write a FeatureMatrix to a filename or a writable stream.

    A filename is written atomically. A stream is written through a
    BufferedWriter and left open. A matrix without rows produces no output.
    """
    cfg = codec_config(config)
    apply_config(logger, cfg)

    with open_sink(file) as sink, BufferedWriter(sink, cfg) as writer:
        for label, vector in matrix.rows():
            _write_row(writer, label, vector)

    logger.info("Matrix saved", extra={"height": matrix.height, "width": matrix.width})
