# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
linearstream: streaming text codec for liblinear feature matrices and models.

Subsystems:
  - streaming: pull iterators, the tokenizer, the buffered writer
  - memory: the block arena used to build exact-size arrays
  - matrix: sparse vectors, FeatureMatrix and its text codec
  - model: solver parameters, weight storage, Model and its text codec
  - config / logging: pydantic config and structured JSON logs
"""

from linearstream.errors import (
    ArenaConsistencyError,
    CodecError,
    CodecOverflowError,
    FormatError,
    InvalidStateError,
)
from linearstream.matrix.core import FeatureMatrix, Problem
from linearstream.model.core import Model, TrainedWeights
from linearstream.model.solver import SOLVER_TYPES, Solver

__all__ = [
    "SOLVER_TYPES",
    "ArenaConsistencyError",
    "CodecError",
    "CodecOverflowError",
    "FeatureMatrix",
    "FormatError",
    "InvalidStateError",
    "Model",
    "Problem",
    "Solver",
    "TrainedWeights",
]
