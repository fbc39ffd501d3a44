# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Where a model's weight vector W lives.

W is one flat torch.float64 tensor of cols * rows values. It is held by one
of two storage kinds:

  HeapWeights    an ordinary tensor in process memory
  MappedWeights  a tensor mapped from a temporary file, for weight matrices
                 too large to keep resident; the kernel pages it in and out

Both expose the same three things: `tensor`, `size` and `release()`.
Release happens exactly once. For a mapped storage it drops the tensor
first (which unmaps the file once no view is left) and then closes the temp
file, which deletes it.
"""

import logging
import sys
import tempfile
from typing import IO, Optional, Union

import torch

from linearstream.config.schema import CodecConfig, resolve_config
from linearstream.errors import CodecOverflowError, InvalidStateError
from linearstream.logging.logger import get_logger
from linearstream.memory.arena import FLOAT64_SIZE

logger: logging.Logger = get_logger(__name__)


def weights_nbytes(size: int) -> int:
    """
    Byte size of `size` float64 values.

    Raises:
        CodecOverflowError: The result doesn't fit the addressable range.
    """
    if size < 0:
        raise ValueError(f"Weight count must be >= 0, got {size}")
    if size > sys.maxsize // FLOAT64_SIZE:
        raise CodecOverflowError(f"Weight matrix of {size} values is too large")
    return size * FLOAT64_SIZE


class HeapWeights:
    """Weights held in a regular tensor."""

    kind = "heap"

    def __init__(self, tensor: torch.Tensor) -> None:
        self._tensor: Optional[torch.Tensor] = tensor.reshape(-1)
        self._size = self._tensor.numel()

    @classmethod
    def allocate(cls, size: int) -> "HeapWeights":
        weights_nbytes(size)
        return cls(torch.empty(size, dtype=torch.float64))

    @property
    def size(self) -> int:
        return self._size

    @property
    def released(self) -> bool:
        return self._tensor is None

    @property
    def tensor(self) -> torch.Tensor:
        if self._tensor is None:
            raise InvalidStateError("Weights have been released")
        return self._tensor

    def release(self) -> None:
        self._tensor = None


class MappedWeights:
    """
    Weights in a shared mapping of an anonymous temp file.

    The file is created in `directory` (None means the system temp dir),
    grown to exactly `size * 8` bytes by seeking to the last byte and
    writing a single zero, and mapped with torch.from_file. A zero-sized
    storage creates no file and no mapping, just an empty tensor.

    Raises:
        OSError: Creating, growing or mapping the file failed. Anything
            created up to that point is cleaned up first.
    """

    kind = "mmap"

    def __init__(self, size: int, directory: Optional[str] = None) -> None:
        nbytes = weights_nbytes(size)
        self._size = size
        self._file: Optional[IO[bytes]] = None
        self._tensor: Optional[torch.Tensor] = None

        if nbytes == 0:
            self._tensor = torch.empty(0, dtype=torch.float64)
            return

        self._file = tempfile.NamedTemporaryFile(
            mode="w+b",
            prefix="linearstream_w_",
            suffix=".bin",
            dir=directory,
        )
        try:
            self._file.seek(nbytes - 1)
            self._file.write(b"\0")
            self._file.flush()
            self._tensor = torch.from_file(
                self._file.name, shared=True, size=size, dtype=torch.float64
            )
        except BaseException:
            self._file.close()
            self._file = None
            raise

        logger.debug(
            "Mapped weight storage",
            extra={"path": self._file.name, "values": size, "bytes": nbytes},
        )

    @property
    def size(self) -> int:
        return self._size

    @property
    def released(self) -> bool:
        return self._tensor is None and self._file is None

    @property
    def path(self) -> Optional[str]:
        """Temp file backing the mapping; None for a zero-sized storage."""
        return None if self._file is None else self._file.name

    @property
    def tensor(self) -> torch.Tensor:
        if self._tensor is None:
            raise InvalidStateError("Weights have been released")
        return self._tensor

    def release(self) -> None:
        """Unmap, then close (and thereby delete) the temp file."""
        self._tensor = None
        temp_file, self._file = self._file, None
        if temp_file is not None:
            temp_file.close()


WeightStorage = Union[HeapWeights, MappedWeights]


def allocate_weights(
    size: int,
    mmap: bool = False,
    config: Optional[CodecConfig] = None,
) -> WeightStorage:
    """
    Allocate uninitialized storage for `size` float64 weights.

    Args:
        size: Number of values (cols * rows).
        mmap: Back the tensor by a temporary file instead of process memory.
        config: Supplies `mmap_directory`; None means defaults.

    Raises:
        CodecOverflowError: `size * 8` exceeds the addressable range.
        OSError: The mmap temp file could not be created or mapped.
    """
    if mmap:
        cfg = resolve_config(config)
        return MappedWeights(size, cfg.mmap_directory)
    return HeapWeights.allocate(size)
