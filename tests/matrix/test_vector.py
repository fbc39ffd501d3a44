# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for sparse vector construction.

A vector can come from a mapping, from a key container (keys() plus
indexing), or from a plain value sequence. In every case zeros vanish,
nodes end up sorted by index and bad indices are rejected.
"""

import pytest

from linearstream.config.schema import CodecConfig
from linearstream.errors import CodecOverflowError, FormatError
from linearstream.matrix.vector import SENTINEL, FeatureNode, build_vector, max_index


class KeyContainer:
    """Exposes keys() and __getitem__ but no items()."""

    def __init__(self, data: dict) -> None:
        self._data = data

    def keys(self):  # type: ignore[no-untyped-def]
        return iter(self._data.keys())

    def __getitem__(self, key):  # type: ignore[no-untyped-def]
        return self._data[key]


class TestSources:
    def test_mapping_drops_zeros_and_sorts(self) -> None:
        assert build_vector({3: 1.0, 1: 0.0, 2: -2.5}) == (
            FeatureNode(2, -2.5),
            FeatureNode(3, 1.0),
        )

    def test_insertion_order_does_not_matter(self) -> None:
        assert build_vector({2: -2.5, 3: 1.0}) == build_vector({3: 1.0, 2: -2.5})

    def test_key_container(self) -> None:
        assert build_vector(KeyContainer({5: 2, 1: 1})) == (
            FeatureNode(1, 1.0),
            FeatureNode(5, 2.0),
        )

    def test_value_list_gets_indices_from_one(self) -> None:
        assert build_vector([0.5, 0.0, 1.5]) == (FeatureNode(1, 0.5), FeatureNode(3, 1.5))

    def test_generator_of_values(self) -> None:
        assert build_vector(float(v) for v in range(3)) == (
            FeatureNode(2, 1.0),
            FeatureNode(3, 2.0),
        )

    def test_empty_sources(self) -> None:
        assert build_vector({}) == ()
        assert build_vector([]) == ()
        assert build_vector([0, 0.0]) == ()

    def test_numeric_strings_are_converted(self) -> None:
        assert build_vector({"4": "0.25"}) == (FeatureNode(4, 0.25),)

    def test_many_nodes_across_blocks(self) -> None:
        values = [float(i % 7) for i in range(1000)]
        vector = build_vector(values, CodecConfig(block_bytes=16))
        assert [node.index for node in vector] == [i + 1 for i in range(1000) if i % 7]


class TestInvalid:
    @pytest.mark.parametrize("index", [0, -1])
    def test_non_positive_index(self, index: int) -> None:
        with pytest.raises(FormatError):
            build_vector({index: 1.0})

    def test_index_out_of_range(self) -> None:
        with pytest.raises(CodecOverflowError):
            build_vector({2**31: 1.0})

    def test_duplicate_index(self) -> None:
        with pytest.raises(FormatError, match="Duplicate"):
            build_vector({1: 1.0, "1": 3.0})

    def test_non_numeric_value(self) -> None:
        with pytest.raises(ValueError):
            build_vector({1: "abc"})


def test_sentinel_and_max_index() -> None:
    assert SENTINEL == FeatureNode(-1, 0.0)
    assert max_index(()) == 0
    assert max_index(build_vector({9: 1.0, 4: 2.0})) == 9
