# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The FeatureMatrix value: labels plus sparse vectors, built once, then read-only.

A matrix comes from one of three places:
  - a text stream, through FeatureMatrix.load (see matrix/codec.py)
  - an iterable of (label, vector) rows, or of bare vectors with a constant
    label, through FeatureMatrix.from_iterable
  - two parallel iterables, through FeatureMatrix.from_iterables

All three end up in the same builder, which only sees a PullIterator of
(label, vector) pairs. The vector half is either a reader producing
FeatureNodes (file input) or any Python vector source build_vector
understands.

The only state that changes after construction is the biased alias: the
solver sometimes wants every row extended by a constant bias feature, and
that copy is made on first request and cached.
"""

from collections.abc import Iterable, Iterator
from typing import Any, NamedTuple, Optional

from linearstream.config.loader import ConfigSource
from linearstream.config.schema import CodecConfig, resolve_config
from linearstream.errors import CodecOverflowError, InvalidStateError
from linearstream.memory.arena import ROW_RECORD_SIZE, BlockArena
from linearstream.matrix.vector import (
    SENTINEL,
    FeatureNode,
    FeatureVector,
    collect_nodes,
    iter_pairs,
    max_index,
)
from linearstream.streaming.iterator import PullIterator, SourceIterator, ZipSource
from linearstream.streaming.numbers import INT32_MAX


class Problem(NamedTuple):
    """
    What a trainer gets to see.

    Every vector ends with the SENTINEL node. When `bias` is >= 0 every
    vector also carries a bias node at index `width` just before the
    sentinel, and `width` already includes that extra column.
    """

    labels: tuple[float, ...]
    vectors: tuple[tuple[FeatureNode, ...], ...]
    height: int
    width: int
    bias: float


def _vector_pairs(vector: Any) -> Iterable[tuple[int, float]]:
    # Readers coming out of the matrix codec already yield validated nodes.
    if isinstance(vector, PullIterator):
        return vector
    return iter_pairs(vector)


class FeatureMatrix:
    """
    Immutable sparse matrix with one float label per row.

    Attributes are exposed read-only: `height` is the number of rows and
    `width` the largest feature index seen in any row (0 for a matrix
    without a single non-zero value).

    Closing the matrix drops its rows. Using it afterwards raises
    InvalidStateError.
    """

    def __init__(self, labels: list[float], vectors: list[FeatureVector], width: int) -> None:
        if len(labels) != len(vectors):
            raise ValueError("labels and vectors have different lengths")
        self._labels: Optional[list[float]] = labels
        self._vectors: Optional[list[FeatureVector]] = vectors
        self._height = len(labels)
        self._width = width
        self._biased: Optional[tuple[float, tuple[tuple[FeatureNode, ...], ...]]] = None

    # ------------------------------------------------------------------
    # construction

    @classmethod
    def from_rows(cls, rows: PullIterator, config: Optional[CodecConfig] = None) -> "FeatureMatrix":
        """
        Drain a pull iterator of (label, vector) pairs into a new matrix.

        Rows are staged in a BlockArena until the source is exhausted, so
        the final label and vector lists are allocated exactly once. The
        source is disposed in every case, including errors.

        Raises:
            CodecOverflowError: More than 2**31 - 2 rows.
            FormatError: A vector contains a bad or duplicate index.
            TypeError / ValueError: A row or a vector has the wrong shape.
        """
        cfg = resolve_config(config)
        arena: BlockArena[tuple[float, FeatureVector]] = BlockArena(ROW_RECORD_SIZE, cfg.block_bytes)
        height = 0
        width = 0

        try:
            while True:
                row = rows.advance()
                if row is None:
                    break
                if height >= INT32_MAX - 1:
                    raise CodecOverflowError("Too many rows for a feature matrix")

                label, vector = row
                label = float(label)
                nodes = collect_nodes(_vector_pairs(vector), cfg)
                width = max(width, max_index(nodes))
                arena.append((label, nodes))
                height += 1

            labels: list[float] = [0.0] * height
            vectors: list[FeatureVector] = [()] * height

            def store(offset: int, items: list[tuple[float, FeatureVector]]) -> None:
                for position, (row_label, row_nodes) in enumerate(items, offset):
                    labels[position] = row_label
                    vectors[position] = row_nodes

            arena.finalize_into(height, store)
        except BaseException:
            arena.clear()
            raise
        finally:
            rows.dispose()

        return cls(labels, vectors, width)

    @classmethod
    def from_iterable(
        cls,
        iterable: Iterable[Any],
        assign_labels: Optional[float] = None,
        config: Optional[CodecConfig] = None,
    ) -> "FeatureMatrix":
        """
        Build a matrix from an iterable of rows.

        With `assign_labels=None` every item must be a (label, vector) pair.
        Otherwise every item is a bare vector and gets `assign_labels` as its
        label. Vectors can be mappings, key containers or value sequences
        (see build_vector).

        Example:
            FeatureMatrix.from_iterable([(1, {1: 0.5}), (-1, [0.0, 2.0])])
        """
        if assign_labels is None:
            rows: PullIterator = SourceIterator(iterable)
        else:
            label = float(assign_labels)
            rows = SourceIterator((label, vector) for vector in iterable)
        return cls.from_rows(rows, config)

    @classmethod
    def from_iterables(
        cls,
        labels: Iterable[Any],
        vectors: Iterable[Any],
        config: Optional[CodecConfig] = None,
    ) -> "FeatureMatrix":
        """
        Build a matrix from parallel label and vector iterables.

        Raises:
            ValueError: The two iterables have different lengths.
        """
        return cls.from_rows(ZipSource(labels, vectors), config)

    @classmethod
    def load(cls, file: Any, config: ConfigSource = None) -> "FeatureMatrix":
        """Read a matrix from a filename or a readable stream."""
        from linearstream.matrix.codec import load_matrix

        return load_matrix(file, config)

    def save(self, file: Any, config: ConfigSource = None) -> None:
        """Write the matrix to a filename or a writable stream."""
        from linearstream.matrix.codec import save_matrix

        save_matrix(self, file, config)

    # ------------------------------------------------------------------
    # views

    @property
    def height(self) -> int:
        return self._height

    @property
    def width(self) -> int:
        return self._width

    @property
    def closed(self) -> bool:
        return self._vectors is None

    def __len__(self) -> int:
        return self._height

    def _require_open(self) -> tuple[list[float], list[FeatureVector]]:
        if self._labels is None or self._vectors is None:
            raise InvalidStateError("Feature matrix is closed")
        return self._labels, self._vectors

    def rows(self) -> Iterator[tuple[float, FeatureVector]]:
        """Yield (label, vector) for each row."""
        labels, vectors = self._require_open()
        return zip(labels, vectors)

    def labels(self) -> Iterator[float]:
        labels, _ = self._require_open()
        return iter(labels)

    def features(self) -> Iterator[dict[int, float]]:
        """Yield one {index: value} dict per row."""
        _, vectors = self._require_open()
        return (dict(vector) for vector in vectors)

    def as_problem(self, bias: Optional[float] = None) -> Problem:
        """
        Prepare the rows for a trainer.

        Without a bias (None or a negative value) the vectors are only
        terminated with the sentinel node. With a bias every vector gets an
        extra node (width + 1, bias); that copy is cached and rebuilt only
        when a different bias value is asked for.
        """
        labels, vectors = self._require_open()

        if bias is None or bias < 0:
            terminated = tuple(vector + (SENTINEL,) for vector in vectors)
            return Problem(tuple(labels), terminated, self._height, self._width, -1.0)

        bias = float(bias)
        if self._biased is None or self._biased[0] != bias:
            bias_node = FeatureNode(self._width + 1, bias)
            self._biased = (bias, tuple(vector + (bias_node, SENTINEL) for vector in vectors))

        return Problem(tuple(labels), self._biased[1], self._height, self._width + 1, bias)

    # ------------------------------------------------------------------
    # teardown

    def close(self) -> None:
        """Drop all rows and the biased alias. Calling it again does nothing."""
        self._biased = None
        self._vectors = None
        self._labels = None

    def __enter__(self) -> "FeatureMatrix":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"height={self._height}, width={self._width}"
        return f"FeatureMatrix({state})"
