# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The pull-iterator contract shared by every streaming source in the package.

The tokenizer, the row and vector readers of the matrix codec, the arena
stream and the prediction stream all look the same to their consumers:

  advance()        -> next item, or None once the source is exhausted
  dispose()        -> release whatever the source owns; safe to call twice
  trace(visitor)   -> call visitor(resource) for every owned resource

Codecs only ever talk to this interface, never to a concrete source, which
is what lets the matrix builder take rows from a file and from a Python
iterable through the same code path.

Subclasses implement the three underscore hooks. The public methods handle
the bookkeeping: once a source returned None, or was disposed, advance()
keeps returning None without touching the hook again.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Optional

_END = object()


class PullIterator(ABC):
    """Base class for all pull-based sources."""

    def __init__(self) -> None:
        self._exhausted = False
        self._disposed = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def disposed(self) -> bool:
        return self._disposed

    def advance(self) -> Optional[Any]:
        """
        Return the next item, or None when nothing is left.

        Errors raised by the concrete source propagate as-is. The source is
        not restartable: after the first None every call returns None.
        """
        if self._exhausted or self._disposed:
            return None
        item = self._advance()
        if item is None:
            self._exhausted = True
        return item

    def dispose(self) -> None:
        """Release owned resources. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._dispose()

    def trace(self, visitor: Callable[[object], None]) -> None:
        """Call `visitor` once for each resource this source currently owns."""
        if self._disposed:
            return
        for resource in self._resources():
            visitor(resource)

    @abstractmethod
    def _advance(self) -> Optional[Any]:
        """Produce the next item or None."""

    def _dispose(self) -> None:
        """Release resources. Default: nothing to release."""

    def _resources(self) -> list[object]:
        """Resources to report from trace(). Default: none."""
        return []

    def __iter__(self) -> Iterator[Any]:
        return self

    def __next__(self) -> Any:
        item = self.advance()
        if item is None:
            raise StopIteration
        return item

    def __enter__(self) -> "PullIterator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class SourceIterator(PullIterator):
    """
    Adapts any Python iterable to the pull contract.

    This is how caller-supplied rows and vectors enter the codec. `dispose`
    calls the underlying iterator's close() when it has one (generators do),
    so abandoning a half-read source doesn't leave a suspended generator
    behind.
    """

    def __init__(self, iterable: Iterable[Any]) -> None:
        super().__init__()
        self._iter: Optional[Iterator[Any]] = iter(iterable)

    def _advance(self) -> Optional[Any]:
        if self._iter is None:
            return None
        item = next(self._iter, _END)
        if item is _END:
            return None
        if item is None:
            raise TypeError("None is not a valid item for a codec source")
        return item

    def _dispose(self) -> None:
        it, self._iter = self._iter, None
        close = getattr(it, "close", None)
        if close is not None:
            close()

    def _resources(self) -> list[object]:
        return [] if self._iter is None else [self._iter]


class ZipSource(PullIterator):
    """
    Pairs items from two iterables and insists they have the same length.

    Used by FeatureMatrix.from_iterables, which takes labels and vectors as
    separate sequences.
    """

    def __init__(self, left: Iterable[Any], right: Iterable[Any]) -> None:
        super().__init__()
        self._left = SourceIterator(left)
        self._right = SourceIterator(right)

    def _advance(self) -> Optional[tuple[Any, Any]]:
        left = self._left.advance()
        right = self._right.advance()
        if left is None and right is None:
            return None
        if left is None or right is None:
            raise ValueError("labels and vectors have different lengths")
        return left, right

    def _dispose(self) -> None:
        self._left.dispose()
        self._right.dispose()

    def _resources(self) -> list[object]:
        return [self._left, self._right]
