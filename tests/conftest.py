# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for linearstream tests.

Fixtures here are available to every test file automatically.
We keep them minimal, just the stuff that multiple test modules need.
"""

import textwrap
from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from linearstream.config.schema import CodecConfig
from linearstream.matrix.core import FeatureMatrix


class ChunkedSource:
    """
    A `read(n)` source that hands out pre-cut chunks, ignoring `n`.

    Lets tests control exactly where chunk boundaries fall, which is what
    the tokenizer's borrowed/owned logic depends on.
    """

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = list(chunks)
        self.calls = 0

    def read(self, size: int) -> bytes:
        self.calls += 1
        if not self._chunks:
            return b""
        return self._chunks.pop(0)


@pytest.fixture()
def chunked() -> Callable[..., ChunkedSource]:
    """Factory: chunked(b"ab", b"cd") -> source whose read() returns those chunks."""

    def make(*chunks: bytes) -> ChunkedSource:
        return ChunkedSource(chunks)

    return make


@pytest.fixture()
def tiny_config() -> CodecConfig:
    """
    A config with absurdly small buffers and blocks.

    Forces every code path that deals with chunk boundaries, writer
    overflow and multi-block arenas to run even on small inputs.
    """
    return CodecConfig(tokenizer_buffer_size=3, writer_buffer_size=16, block_bytes=16)


@pytest.fixture()
def sample_matrix() -> FeatureMatrix:
    """Three rows: a two-feature row, an empty row and a three-feature row."""
    return FeatureMatrix.from_iterable(
        [
            (1, {1: 0.5, 3: -1.25}),
            (-1, {}),
            (2, {2: 1e-300, 4: 3.0, 7: -0.1}),
        ]
    )


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """A valid config YAML with every codec knob set."""
    config_content = textwrap.dedent("""\
        codec:
          tokenizer_buffer_size: 64
          writer_buffer_size: 128
          block_bytes: 256
          log_level: "DEBUG"
    """)
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """A config file that's valid YAML but fails schema validation (buffer size 0)."""
    config_content = textwrap.dedent("""\
        codec:
          tokenizer_buffer_size: 0
    """)
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
