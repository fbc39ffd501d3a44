# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for FeatureMatrix construction, views and problem preparation.
"""

from collections.abc import Iterator

import pytest

from linearstream.config.schema import CodecConfig
from linearstream.errors import FormatError, InvalidStateError
from linearstream.matrix.core import FeatureMatrix
from linearstream.matrix.vector import SENTINEL, FeatureNode


class TestFromIterable:
    def test_label_vector_pairs(self, sample_matrix: FeatureMatrix) -> None:
        assert sample_matrix.height == 3
        assert len(sample_matrix) == 3
        assert sample_matrix.width == 7
        assert list(sample_matrix.labels()) == [1.0, -1.0, 2.0]

    def test_features_view(self, sample_matrix: FeatureMatrix) -> None:
        assert list(sample_matrix.features()) == [
            {1: 0.5, 3: -1.25},
            {},
            {2: 1e-300, 4: 3.0, 7: -0.1},
        ]

    def test_assign_labels(self) -> None:
        matrix = FeatureMatrix.from_iterable([[1.0, 2.0], {5: 1.0}], assign_labels=7)
        assert list(matrix.labels()) == [7.0, 7.0]
        assert matrix.width == 5

    def test_empty_iterable(self) -> None:
        matrix = FeatureMatrix.from_iterable([])
        assert matrix.height == 0
        assert matrix.width == 0
        assert list(matrix.rows()) == []

    def test_generator_rows_across_blocks(self) -> None:
        def rows() -> Iterator[tuple[int, dict]]:
            for i in range(200):
                yield i % 3, {i + 1: 1.0}

        matrix = FeatureMatrix.from_iterable(rows(), config=CodecConfig(block_bytes=16))
        assert matrix.height == 200
        assert matrix.width == 200
        assert list(matrix.labels())[:4] == [0.0, 1.0, 2.0, 0.0]
        assert list(matrix.features())[199] == {200: 1.0}

    def test_bad_row_shape(self) -> None:
        with pytest.raises((TypeError, ValueError)):
            FeatureMatrix.from_iterable([(1, {1: 1.0}, "extra")])

    def test_bad_vector_propagates(self) -> None:
        with pytest.raises(FormatError):
            FeatureMatrix.from_iterable([(1, {0: 1.0})])

    def test_source_is_closed_on_error(self) -> None:
        closed = []

        def rows() -> Iterator[tuple[int, dict]]:
            try:
                yield 1, {1: 1.0}
                yield 1, {-5: 1.0}
                yield 1, {2: 1.0}
            finally:
                closed.append(True)

        with pytest.raises(FormatError):
            FeatureMatrix.from_iterable(rows())
        assert closed == [True]


class TestFromIterables:
    def test_parallel_iterables(self) -> None:
        matrix = FeatureMatrix.from_iterables([1, 2], [{1: 1.0}, [0.0, 3.0]])
        assert list(matrix.rows()) == [
            (1.0, (FeatureNode(1, 1.0),)),
            (2.0, (FeatureNode(2, 3.0),)),
        ]

    @pytest.mark.parametrize("labels, vectors", [([1, 2], [{}]), ([1], [{}, {}])])
    def test_length_mismatch(self, labels: list, vectors: list) -> None:
        with pytest.raises(ValueError, match="different lengths"):
            FeatureMatrix.from_iterables(labels, vectors)


class TestAsProblem:
    def test_without_bias(self, sample_matrix: FeatureMatrix) -> None:
        problem = sample_matrix.as_problem()
        assert problem.height == 3
        assert problem.width == 7
        assert problem.bias == -1.0
        assert problem.labels == (1.0, -1.0, 2.0)
        assert problem.vectors[1] == (SENTINEL,)
        assert problem.vectors[0][-1] == SENTINEL

    def test_negative_bias_means_none(self, sample_matrix: FeatureMatrix) -> None:
        assert sample_matrix.as_problem(-1).width == 7

    def test_with_bias(self, sample_matrix: FeatureMatrix) -> None:
        problem = sample_matrix.as_problem(1.5)
        assert problem.width == 8
        assert problem.bias == 1.5
        assert problem.vectors[0] == (
            FeatureNode(1, 0.5),
            FeatureNode(3, -1.25),
            FeatureNode(8, 1.5),
            SENTINEL,
        )
        assert problem.vectors[1] == (FeatureNode(8, 1.5), SENTINEL)

    def test_biased_alias_is_cached(self, sample_matrix: FeatureMatrix) -> None:
        first = sample_matrix.as_problem(1.0)
        second = sample_matrix.as_problem(1.0)
        assert first.vectors is second.vectors

        other = sample_matrix.as_problem(2.0)
        assert other.vectors is not first.vectors
        assert other.vectors[1][0] == FeatureNode(8, 2.0)

    def test_rows_are_unchanged_by_bias(self, sample_matrix: FeatureMatrix) -> None:
        sample_matrix.as_problem(1.0)
        assert list(sample_matrix.features())[1] == {}


class TestClose:
    def test_close_is_idempotent(self, sample_matrix: FeatureMatrix) -> None:
        sample_matrix.close()
        sample_matrix.close()
        assert sample_matrix.closed

    def test_use_after_close(self, sample_matrix: FeatureMatrix) -> None:
        sample_matrix.close()
        with pytest.raises(InvalidStateError):
            list(sample_matrix.rows())
        with pytest.raises(InvalidStateError):
            sample_matrix.as_problem()

    def test_context_manager(self) -> None:
        with FeatureMatrix.from_iterable([(1, [1.0])]) as matrix:
            assert matrix.height == 1
        assert matrix.closed
