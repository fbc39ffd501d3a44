# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Sparse feature vectors.

A vector is an immutable tuple of FeatureNode(index, value) pairs sorted by
index, with no zero values and no duplicate indices. Three kinds of Python
source are accepted, mirroring what liblinear users usually have at hand:

  - a mapping, read through items():           {3: 1.0, 2: -2.5}
  - a key container, read through keys() + []:  anything with keys()
  - a plain sequence of values:                 [0.5, 0.0, 1.5] -> indices 1, 2, 3

Nodes are staged in a BlockArena, so a generator producing a million
features never needs a growing list next to the final tuple.
"""

from collections.abc import Iterable, Iterator
from operator import itemgetter
from typing import Any, NamedTuple, Optional

from linearstream.config.schema import CodecConfig, resolve_config
from linearstream.errors import CodecOverflowError, FormatError
from linearstream.memory.arena import FEATURE_NODE_SIZE, BlockArena
from linearstream.streaming.numbers import INT32_MAX


class FeatureNode(NamedTuple):
    index: int
    value: float


# Terminates a vector when it is handed to a solver.
SENTINEL = FeatureNode(-1, 0.0)

FeatureVector = tuple[FeatureNode, ...]


def as_index(value: Any) -> int:
    """Convert a user-supplied key to a feature index (1 .. 2**31-1)."""
    index = int(value)
    if index <= 0:
        raise FormatError(f"Feature index must be > 0, got {index}")
    if index > INT32_MAX:
        raise CodecOverflowError(f"Feature index out of range: {index}")
    return index


def iter_pairs(source: Any) -> Iterator[tuple[int, float]]:
    items = getattr(source, "items", None)
    if callable(items):
        for key, value in items():
            yield as_index(key), float(value)
        return

    keys = getattr(source, "keys", None)
    if callable(keys):
        for key in keys():
            yield as_index(key), float(source[key])
        return

    for position, value in enumerate(source, start=1):
        if position > INT32_MAX:
            raise CodecOverflowError("Too many values in feature vector")
        yield position, float(value)


def normalize_nodes(nodes: list[FeatureNode]) -> FeatureVector:
    """Sort nodes by index and reject duplicate indices."""
    nodes.sort(key=itemgetter(0))
    for prev, node in zip(nodes, nodes[1:]):
        if prev.index == node.index:
            raise FormatError(f"Duplicate feature index {node.index}")
    return tuple(nodes)


def collect_nodes(
    pairs: Iterable[tuple[int, float]],
    config: Optional[CodecConfig] = None,
) -> FeatureVector:
    """
    Drain (index, value) pairs into a normalized vector.

    Zero values are skipped before they reach the arena. The pairs are
    expected to carry validated indices already.
    """
    cfg = resolve_config(config)
    arena: BlockArena[FeatureNode] = BlockArena(FEATURE_NODE_SIZE, cfg.block_bytes)
    count = 0
    try:
        for index, value in pairs:
            if value == 0.0:
                continue
            arena.append(FeatureNode(index, value))
            count += 1
        nodes = arena.finalize(count)
    except BaseException:
        arena.clear()
        raise
    return normalize_nodes(nodes)


def build_vector(source: Any, config: Optional[CodecConfig] = None) -> FeatureVector:
    """
    Build a vector from a mapping, a key container or a value sequence.

    Example:
        build_vector({3: 1.0, 1: 0.0, 2: -2.5})
        -> (FeatureNode(2, -2.5), FeatureNode(3, 1.0))
    """
    return collect_nodes(iter_pairs(source), config)


def max_index(vector: FeatureVector) -> int:
    """Largest index in the vector, 0 for an empty one."""
    return vector[-1].index if vector else 0
