# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Text codec for trained models, in liblinear's model file format:

    solver_type L2R_LR
    nr_class 3
    label 1 2 3
    nr_feature 4
    bias -1.0
    w
    0.25 -0.5 0.125
    ...                  (one line per feature column, `rows` values each)

The header is a sequence of `key value...` lines in any order. Each key may
appear once; `label` is optional, the other four are required before `w`.
Everything after `w` is the flat weight vector.

Loading keeps memory bounded: labels are staged in a BlockArena and the
weights go through a block-sized list that is copied into the final
storage slice by slice, so a mapped W is never duplicated in process
memory. If anything fails after the storage was allocated, the storage is
released again before the error leaves, and a failing release is logged
instead of replacing the original error.
"""

import logging
from collections.abc import Iterator
from typing import Any, NamedTuple, Optional

import torch

from linearstream.config.loader import ConfigSource, codec_config
from linearstream.config.schema import CodecConfig, resolve_config
from linearstream.errors import FormatError
from linearstream.logging.logger import apply_config, get_logger
from linearstream.memory.arena import FLOAT64_SIZE, INT32_SIZE, BlockArena
from linearstream.model.core import Model, weight_shape
from linearstream.model.solver import SOLVER_TYPES
from linearstream.model.storage import WeightStorage, allocate_weights, weights_nbytes
from linearstream.streaming.io import open_sink, open_source
from linearstream.streaming.iterator import PullIterator
from linearstream.streaming.numbers import format_float, parse_float, parse_int
from linearstream.streaming.tokenizer import Token, Tokenizer
from linearstream.streaming.writer import BufferedWriter

logger: logging.Logger = get_logger(__name__)

_SOLVER_TYPE = 1 << 0
_NR_CLASS = 1 << 1
_NR_FEATURE = 1 << 2
_BIAS = 1 << 3
_LABEL = 1 << 4
_W = 1 << 5

_REQUIRED = _SOLVER_TYPE | _NR_CLASS | _NR_FEATURE | _BIAS

_KEYS: dict[bytes, int] = {
    b"solver_type": _SOLVER_TYPE,
    b"nr_class": _NR_CLASS,
    b"nr_feature": _NR_FEATURE,
    b"bias": _BIAS,
    b"label": _LABEL,
    b"w": _W,
}


class ModelHeader(NamedTuple):
    solver_type: str
    nr_class: int
    nr_feature: int
    bias: float
    labels: Optional[list[int]]


def _value_token(tokens: PullIterator, key: str) -> Token:
    token = tokens.advance()
    if token is None or token.is_eol:
        raise FormatError(f"Missing value for '{key}'")
    return token


def _end_of_line(tokens: PullIterator, key: str) -> None:
    token = tokens.advance()
    if token is not None and not token.is_eol:
        raise FormatError(f"Unexpected extra value after '{key}': {token.tobytes()!r}")


def _read_labels(tokens: PullIterator, config: CodecConfig) -> list[int]:
    arena: BlockArena[int] = BlockArena(INT32_SIZE, config.block_bytes)
    count = 0
    try:
        while True:
            token = tokens.advance()
            if token is None or token.is_eol:
                break
            arena.append(parse_int(token.data, "label"))
            count += 1
        return arena.finalize(count)
    except BaseException:
        arena.clear()
        raise


def read_header(tokens: PullIterator, config: Optional[CodecConfig] = None) -> ModelHeader:
    """
    Consume header lines up to and including the `w` line.

    Raises:
        FormatError: Unknown, duplicate or missing keys, a missing value,
            an unknown solver name, or a label count that doesn't match
            nr_class.
        CodecOverflowError: An integer doesn't fit int32.
    """
    cfg = resolve_config(config)
    seen = 0
    solver_type = ""
    nr_class = 0
    nr_feature = 0
    bias = -1.0
    labels: Optional[list[int]] = None

    while True:
        token = tokens.advance()
        if token is None:
            raise FormatError("Model stream ended before the 'w' section")
        if token.is_eol:
            continue

        raw = token.tobytes()
        flag = _KEYS.get(raw)
        if flag is None:
            raise FormatError(f"Unknown model key {raw!r}")
        if seen & flag:
            raise FormatError(f"Duplicate model key {raw!r}")
        seen |= flag
        key = raw.decode("ascii")

        if flag == _W:
            missing = [name.decode("ascii") for name, bit in _KEYS.items() if bit & _REQUIRED & ~seen]
            if missing:
                raise FormatError(f"'w' before required keys: {', '.join(missing)}")
            _end_of_line(tokens, key)
            break

        if flag == _LABEL:
            labels = _read_labels(tokens, cfg)
            continue

        value = _value_token(tokens, key)
        if flag == _SOLVER_TYPE:
            # Files carry names only, never the numeric ids Solver() accepts.
            name = value.tobytes().decode("ascii", errors="replace")
            if name not in SOLVER_TYPES:
                raise FormatError(f"Unknown solver type {name!r}")
            solver_type = name
        elif flag == _NR_CLASS:
            nr_class = parse_int(value.data, "nr_class")
            if nr_class <= 0:
                raise FormatError(f"nr_class must be > 0, got {nr_class}")
        elif flag == _NR_FEATURE:
            nr_feature = parse_int(value.data, "nr_feature")
            if nr_feature < 0:
                raise FormatError(f"nr_feature must be >= 0, got {nr_feature}")
        else:
            bias = parse_float(value.data, "bias")
        _end_of_line(tokens, key)

    if labels is not None and len(labels) != nr_class:
        raise FormatError(f"Expected {nr_class} labels, got {len(labels)}")

    return ModelHeader(solver_type, nr_class, nr_feature, bias, labels)


def _fill_weights(tokens: PullIterator, tensor: torch.Tensor, config: CodecConfig) -> None:
    total = tensor.numel()
    chunk = max(1, config.block_bytes // FLOAT64_SIZE)
    staged: list[float] = []
    filled = 0

    while True:
        token = tokens.advance()
        if token is None:
            break
        if token.is_eol:
            continue
        if filled + len(staged) >= total:
            raise FormatError(f"More than {total} weights in model")
        staged.append(parse_float(token.data, "weight"))
        if len(staged) == chunk:
            tensor[filled:filled + chunk] = torch.tensor(staged, dtype=torch.float64)
            filled += chunk
            staged.clear()

    if staged:
        tensor[filled:filled + len(staged)] = torch.tensor(staged, dtype=torch.float64)
        filled += len(staged)

    if filled != total:
        raise FormatError(f"Expected {total} weights, got {filled}")


def _release_quietly(storage: WeightStorage) -> None:
    try:
        storage.release()
    except Exception:
        logger.warning("Releasing weight storage failed during cleanup", exc_info=True)


def read_model(
    tokens: PullIterator,
    mmap: bool = False,
    config: Optional[CodecConfig] = None,
) -> Model:
    """Build a Model from a token stream. The stream is disposed afterwards."""
    cfg = resolve_config(config)
    try:
        header = read_header(tokens, cfg)
        cols, rows = weight_shape(header.solver_type, header.nr_class, header.nr_feature, header.bias)
        weights_nbytes(cols * rows)

        storage = allocate_weights(cols * rows, mmap=mmap, config=cfg)
        try:
            _fill_weights(tokens, storage.tensor, cfg)
            return Model(
                header.solver_type,
                header.nr_class,
                header.nr_feature,
                header.bias,
                header.labels,
                storage,
            )
        except BaseException:
            _release_quietly(storage)
            raise
    finally:
        tokens.dispose()


def load_model(file: Any, mmap: bool = False, config: ConfigSource = None) -> Model:
    """
    Read a Model from a filename or a readable stream.

    Args:
        file: Path (opened and closed here) or an object with read().
        mmap: Keep the weights in a mapped temp file instead of process memory.
        config: A CodecConfig, a path to a YAML config file, or None for defaults.

    Returns:
        The decoded model. Call close() (or use it in a `with` block) to
        release a mapped weight file early.

    Raises:
        FormatError: The stream isn't a well-formed model file.
        CodecOverflowError: The weight matrix is too large to address.
        OSError: Reading the source or creating the mapping failed.
    """
    cfg = codec_config(config)
    apply_config(logger, cfg)

    with open_source(file) as read:
        model = read_model(Tokenizer(read, cfg), mmap=mmap, config=cfg)

    logger.info(
        "Model loaded",
        extra={
            "solver_type": model.solver_type,
            "nr_class": model.nr_class,
            "nr_feature": model.nr_feature,
            "storage": model.storage_kind,
        },
    )
    return model


def _header_lines(model: Model) -> Iterator[str]:
    yield f"solver_type {model.solver_type}\n"
    yield f"nr_class {model.nr_class}\n"
    if model.labels is not None:
        yield "label " + " ".join(str(label) for label in model.labels) + "\n"
    yield f"nr_feature {model.nr_feature}\n"
    yield f"bias {format_float(model.bias)}\n"
    yield "w\n"


def save_model(model: Model, file: Any, config: ConfigSource = None) -> None:
    """
    Write a Model to a filename or a writable stream.

    Weights are written one feature column per line. They are pulled out of
    the tensor a block of columns at a time so a mapped W is never copied
    whole into a Python list.
    """
    cfg = codec_config(config)
    apply_config(logger, cfg)

    weights = model.weights
    step = max(1, cfg.block_bytes // (FLOAT64_SIZE * max(1, model.rows)))

    with open_sink(file) as sink, BufferedWriter(sink, cfg) as writer:
        for line in _header_lines(model):
            writer.write(line.encode("ascii"))

        for start in range(0, model.cols, step):
            for column in weights[start:start + step].tolist():
                writer.write((" ".join(format_float(value) for value in column) + "\n").encode("ascii"))

    logger.info(
        "Model saved",
        extra={
            "solver_type": model.solver_type,
            "nr_class": model.nr_class,
            "nr_feature": model.nr_feature,
        },
    )
