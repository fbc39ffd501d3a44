# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for linearstream.

Every knob the codec exposes lives in a frozen pydantic model. Frozen means
once you create it, you cannot mutate it. A tokenizer that changed its chunk
size halfway through a stream would be a bug, so the config can't allow it.

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked

Internal components take an optional CodecConfig, None meaning "use the
defaults below". The public load/save functions also accept a path to a
YAML file, see config/loader.py.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CodecConfig(BaseModel):
    """Buffer sizes, arena geometry and mmap placement for the streaming codec."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    tokenizer_buffer_size: int = Field(
        default=8192,
        ge=1,
        description="Number of bytes the tokenizer asks for on each read() call",
    )
    writer_buffer_size: int = Field(
        default=8192,
        ge=1,
        description="Capacity of the buffered writer before it flushes to the sink",
    )
    block_bytes: int = Field(
        default=4096,
        ge=16,
        description="Byte budget of one arena block; capacity is block_bytes // item size",
    )
    mmap_directory: Optional[str] = Field(
        default=None,
        description="Where temp files for mmap-backed weights go; None means the system temp dir",
    )
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )


class LinearStreamConfig(BaseModel):
    """
    Top-level config container, mirroring the layout of the YAML file.

    Only the `codec:` section exists today. It is optional so an empty mapping
    still loads and yields the defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    codec: CodecConfig = Field(default_factory=CodecConfig)


DEFAULT_CONFIG = CodecConfig()


def resolve_config(config: Optional[CodecConfig]) -> CodecConfig:
    """Return `config`, or the shared defaults when the caller passed None."""
    return DEFAULT_CONFIG if config is None else config
