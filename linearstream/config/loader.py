# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Turns whatever a caller passes as `config=` into a CodecConfig.

The public load/save entry points of both codecs accept three things:

    None                     -> the shared defaults
    a CodecConfig            -> used as is
    a str or os.PathLike     -> a YAML file with a `codec:` section

A config file looks like this, every key optional:

    codec:
      tokenizer_buffer_size: 65536
      writer_buffer_size: 65536
      block_bytes: 4096
      mmap_directory: /var/tmp
      log_level: DEBUG

The file is read once per call. Nothing is cached, so editing the file
between two loads takes effect on the second one.
"""

import os
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import ValidationError

from linearstream.config.exceptions import ConfigLoadError, ConfigValidationError
from linearstream.config.schema import CodecConfig, LinearStreamConfig, resolve_config

ConfigSource = Union[CodecConfig, str, os.PathLike, None]


def _parse_mapping(config_path: Path) -> dict[str, Any]:
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as err:
        raise ConfigLoadError(f"Config file not found: {config_path}") from err
    except IsADirectoryError as err:
        raise ConfigLoadError(f"Config path is a directory: {config_path}") from err
    except OSError as err:
        raise ConfigLoadError(f"Cannot read config file {config_path}: {err}") from err

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise ConfigLoadError(f"Invalid YAML in {config_path}: {err}") from err

    # A blank file parses to None and means "all defaults".
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigLoadError(
            f"{config_path} must hold a mapping at the top level, got {type(document).__name__}"
        )
    return document


def load_config(config_path: Union[str, os.PathLike]) -> CodecConfig:
    """
    Read a YAML config file and return its codec settings.

    Raises:
        ConfigLoadError: The file is missing, unreadable, or not a YAML mapping.
        ConfigValidationError: Unknown sections or keys, wrong types, values
            out of range.
    """
    path = Path(config_path)
    document = _parse_mapping(path)

    try:
        parsed = LinearStreamConfig.model_validate(document)
    except ValidationError as err:
        raise ConfigValidationError(f"Config validation failed for {path}:\n{err}") from err

    return parsed.codec


def codec_config(source: ConfigSource) -> CodecConfig:
    """
    Resolve a `config=` argument.

    Example:
        load_matrix("train.txt", config="codec.yaml")
    """
    if source is None or isinstance(source, CodecConfig):
        return resolve_config(source)
    if isinstance(source, (str, os.PathLike)):
        return load_config(source)
    raise TypeError(
        f"config must be a CodecConfig, a path to a YAML file or None, got {type(source).__name__}"
    )
