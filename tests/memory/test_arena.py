# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the block arena.

The arena must hand back exactly what was appended, in insertion order,
across any number of block boundaries, and leave no blocks behind.
"""

import pytest

from linearstream.errors import ArenaConsistencyError
from linearstream.memory.arena import FEATURE_NODE_SIZE, BlockArena


class TestGeometry:
    def test_capacity_from_byte_budget(self) -> None:
        assert BlockArena(8, 64).capacity == 8

    def test_capacity_is_at_least_one(self) -> None:
        assert BlockArena(100, 16).capacity == 1

    def test_rejects_bad_item_size(self) -> None:
        with pytest.raises(ValueError):
            BlockArena(0)

    def test_blocks_are_linked_as_needed(self) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(9):
            arena.append(value)
        assert arena.capacity == 4
        assert arena.block_count == 3
        assert len(arena) == 9

    def test_feature_node_budget(self) -> None:
        assert BlockArena(FEATURE_NODE_SIZE, 4096).capacity == 4096 // FEATURE_NODE_SIZE


class TestFinalize:
    @pytest.mark.parametrize("count", [0, 1, 3, 4, 5, 17, 1000])
    def test_preserves_insertion_order(self, count: int) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(count):
            arena.append(value)

        assert arena.finalize(count) == list(range(count))
        assert arena.block_count == 0
        assert len(arena) == 0

    def test_count_mismatch_raises_and_clears(self) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(5):
            arena.append(value)

        with pytest.raises(ArenaConsistencyError):
            arena.finalize(6)
        assert arena.block_count == 0

    def test_consistency_error_is_an_assertion(self) -> None:
        assert issubclass(ArenaConsistencyError, AssertionError)

    def test_arena_is_reusable(self) -> None:
        arena: BlockArena[str] = BlockArena(8, 16)
        arena.append("a")
        arena.finalize(1)
        arena.append("b")
        assert arena.finalize(1) == ["b"]


class TestFinalizeInto:
    def test_blocks_arrive_newest_first_with_offsets(self) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(10):
            arena.append(value)

        calls: list[tuple[int, list[int]]] = []
        arena.finalize_into(10, lambda offset, items: calls.append((offset, list(items))))

        assert calls == [(8, [8, 9]), (4, [4, 5, 6, 7]), (0, [0, 1, 2, 3])]
        assert arena.block_count == 0

    def test_store_failure_clears_arena(self) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(10):
            arena.append(value)

        def store(offset: int, items: list[int]) -> None:
            raise MemoryError

        with pytest.raises(MemoryError):
            arena.finalize_into(10, store)
        assert arena.block_count == 0
        assert len(arena) == 0


class TestClearAndStream:
    def test_clear_drops_everything(self) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(9):
            arena.append(value)
        arena.clear()
        assert arena.block_count == 0
        assert len(arena) == 0

    def test_stream_yields_in_order_and_empties_arena(self) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(11):
            arena.append(value)

        stream = arena.stream()
        assert arena.block_count == 0
        assert list(stream) == list(range(11))
        assert stream.advance() is None

    def test_stream_dispose_releases_blocks(self) -> None:
        arena: BlockArena[int] = BlockArena(8, 32)
        for value in range(11):
            arena.append(value)

        stream = arena.stream()
        stream.advance()
        resources: list[object] = []
        stream.trace(resources.append)
        assert len(resources) == 3

        stream.dispose()
        resources.clear()
        stream.trace(resources.append)
        assert resources == []
