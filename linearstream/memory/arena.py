# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Block arena for building exact-size arrays from streams of unknown length.

When we parse a matrix we don't know how many rows it has, or how many
features a row has, until the tokenizer hits the end of the row or of the
stream. Growing one list by appending would work, but the final array would
be over-allocated and we'd hold both the growing list and the final copy at
once when converting into a tensor.

The arena instead collects elements in fixed-size blocks linked newest to
oldest:

    head -> [block 3: 17 items] -> [block 2: full] -> [block 1: full] -> None

Finalizing walks the chain once to check the count, allocates exactly one
output of the right size, and fills it back to front. Each block is
unlinked as soon as it has been copied, so peak memory stays at one chain
plus one output array.
"""

import struct
from collections.abc import Callable
from typing import Generic, Optional, TypeVar

from linearstream.errors import ArenaConsistencyError
from linearstream.streaming.iterator import PullIterator

T = TypeVar("T")

# Native sizes of the records we stage. The arena only uses these to turn a
# byte budget into a per-block element capacity.
FEATURE_NODE_SIZE = struct.calcsize("id")
ROW_RECORD_SIZE = struct.calcsize("Pid")
FLOAT64_SIZE = struct.calcsize("d")
INT32_SIZE = struct.calcsize("i")

DEFAULT_BLOCK_BYTES = 4096


class _Block(Generic[T]):
    """One fixed-capacity chunk of the chain."""

    __slots__ = ("prev", "items")

    def __init__(self, prev: "Optional[_Block[T]]") -> None:
        self.prev = prev
        self.items: list[T] = []


class BlockArena(Generic[T]):
    """
    Growable, block-linked storage owned by exactly one builder.

    How to use it:
      1. append() each element as the stream produces it
      2. finalize(expected) (or finalize_into) once the stream ended and
         the builder knows how many elements it counted
      3. on any error path call clear() instead

    After finalize or clear the arena is empty and can be reused.
    """

    def __init__(self, item_size: int, block_bytes: int = DEFAULT_BLOCK_BYTES) -> None:
        if item_size <= 0:
            raise ValueError(f"item_size must be positive, got {item_size}")
        self._capacity = max(1, block_bytes // item_size)
        self._head: Optional[_Block[T]] = None
        self._size = 0

    @property
    def capacity(self) -> int:
        """Elements per block."""
        return self._capacity

    @property
    def block_count(self) -> int:
        count = 0
        block = self._head
        while block is not None:
            count += 1
            block = block.prev
        return count

    def __len__(self) -> int:
        return self._size

    def append(self, item: T) -> None:
        """Store one element, linking a fresh block when the current one is full."""
        block = self._head
        if block is None or len(block.items) >= self._capacity:
            block = _Block(self._head)
            self._head = block
        block.items.append(item)
        self._size += 1

    def clear(self) -> None:
        """Drop every block without producing output."""
        while self._head is not None:
            block = self._head
            self._head = block.prev
            block.prev = None
            block.items.clear()
        self._size = 0

    def _verify(self, expected: int) -> None:
        counted = 0
        block = self._head
        while block is not None:
            counted += len(block.items)
            block = block.prev
        if counted != expected:
            self.clear()
            raise ArenaConsistencyError(
                f"Arena holds {counted} elements but the builder counted {expected}"
            )

    def finalize_into(self, expected: int, store: Callable[[int, list[T]], None]) -> None:
        """
        Hand every block to `store(offset, items)`, newest block first.

        `offset` is the position of the block's first element in insertion
        order. The block is unlinked right after `store` returns, so the
        caller can copy into a tensor or a mapped file without ever holding
        a second full-size list. If `store` raises, the remaining blocks are
        cleared and the error propagates.
        """
        self._verify(expected)

        end = expected
        try:
            while self._head is not None:
                block = self._head
                start = end - len(block.items)
                store(start, block.items)
                end = start
                self._head = block.prev
                self._size -= len(block.items)
                block.prev = None
        except BaseException:
            self.clear()
            raise

    def finalize(self, expected: int) -> list[T]:
        """
        Return exactly `expected` elements in insertion order and empty the arena.

        Raises:
            ArenaConsistencyError: The stored count differs from `expected`.
        """
        self._verify(expected)

        result: list[Optional[T]] = [None] * expected
        end = expected
        while self._head is not None:
            block = self._head
            start = end - len(block.items)
            result[start:end] = block.items
            end = start
            self._head = block.prev
            block.prev = None
        self._size = 0
        return result  # type: ignore[return-value]

    def stream(self) -> "ArenaStream[T]":
        """Consume the arena as a pull iterator, oldest element first."""
        return ArenaStream(self)


class ArenaStream(PullIterator, Generic[T]):
    """
    Pull iterator over an arena's contents in insertion order.

    The chain links newest to oldest, so the stream reverses the block list
    once up front (cheap, one pointer per block) and then frees each block
    as soon as its last element has been handed out.
    """

    def __init__(self, arena: BlockArena[T]) -> None:
        super().__init__()
        blocks: list[_Block[T]] = []
        block = arena._head
        while block is not None:
            blocks.append(block)
            block = block.prev
        # The stream now owns the blocks; the arena starts over empty.
        arena._head = None
        arena._size = 0
        self._blocks = blocks
        self._index = 0

    def _advance(self) -> Optional[T]:
        while self._blocks:
            block = self._blocks[-1]
            if self._index < len(block.items):
                item = block.items[self._index]
                self._index += 1
                return item
            self._blocks.pop()
            block.prev = None
            block.items.clear()
            self._index = 0
        return None

    def _dispose(self) -> None:
        for block in self._blocks:
            block.prev = None
            block.items.clear()
        self._blocks = []

    def _resources(self) -> list[object]:
        return list(self._blocks)
