# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Solver parameters.

liblinear knows eleven solver types, each with its own default stopping
tolerance. The numeric ids are liblinear's own and are what ends up in
binary interfaces; the names are what the model file format stores.

Solver is a frozen pydantic model like the config classes, so a trainer can
never see parameters change under its feet. Construction accepts the same
loose inputs users have always passed:

    Solver()                                   # L2R_L2LOSS_SVC_DUAL, C=1
    Solver("L1R_LR", C=0.25, weights={2: 5})
    Solver(SOLVER_TYPES["MCSVM_CS"], eps=0.5)
    Solver(type=0)

Invalid values (unknown type, C <= 0, eps <= 0, p < 0) raise pydantic's
ValidationError, which is a ValueError.
"""

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# name -> (liblinear id, default eps)
_SOLVER_TABLE: dict[str, tuple[int, float]] = {
    "L2R_LR": (0, 0.01),
    "L2R_L2LOSS_SVC_DUAL": (1, 0.1),
    "L2R_L2LOSS_SVC": (2, 0.01),
    "L2R_L1LOSS_SVC_DUAL": (3, 0.1),
    "MCSVM_CS": (4, 0.1),
    "L1R_L2LOSS_SVC": (5, 0.01),
    "L1R_LR": (6, 0.01),
    "L2R_LR_DUAL": (7, 0.1),
    "L2R_L2LOSS_SVR": (11, 0.001),
    "L2R_L2LOSS_SVR_DUAL": (12, 0.1),
    "L2R_L1LOSS_SVR_DUAL": (13, 0.1),
}

SOLVER_TYPES: dict[str, int] = {name: entry[0] for name, entry in _SOLVER_TABLE.items()}
_NAMES_BY_ID: dict[int, str] = {solver_id: name for name, solver_id in SOLVER_TYPES.items()}

DEFAULT_SOLVER_TYPE = "L2R_L2LOSS_SVC_DUAL"

# Crammer & Singer keeps one weight row per class even for two classes.
MULTICLASS_SOLVER = "MCSVM_CS"
REGRESSION_SOLVERS = frozenset({"L2R_L2LOSS_SVR", "L2R_L2LOSS_SVR_DUAL", "L2R_L1LOSS_SVR_DUAL"})
PROBABILITY_SOLVERS = frozenset({"L2R_LR", "L1R_LR", "L2R_LR_DUAL"})


def solver_name(value: Any) -> str:
    """
    Resolve a solver type given by name or by numeric id.

    Raises:
        ValueError: Neither a known name nor a known id.
    """
    if value is None:
        return DEFAULT_SOLVER_TYPE
    if isinstance(value, str):
        if value in _SOLVER_TABLE:
            return value
        try:
            value = int(value)
        except ValueError:
            raise ValueError(f"Invalid solver type: {value!r}") from None
    if isinstance(value, bool):
        raise ValueError(f"Invalid solver type: {value!r}")
    try:
        return _NAMES_BY_ID[int(value)]
    except (KeyError, TypeError, ValueError):
        raise ValueError(f"Invalid solver type: {value!r}") from None


def default_eps(name: str) -> float:
    return _SOLVER_TABLE[solver_name(name)][1]


class Solver(BaseModel):
    """
    Parameters handed to a trainer together with a prepared Problem.

    Attributes:
        type: Solver name, one of the SOLVER_TYPES keys.
        C: Cost parameter, > 0.
        eps: Stopping tolerance, > 0. Defaults per solver type.
        p: Epsilon of the SVR loss, >= 0. Only the regression solvers use it.
        weights: Per-label cost multipliers (label -> weight).
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    type: str = Field(default=DEFAULT_SOLVER_TYPE)
    C: float = Field(default=1.0, gt=0)
    eps: float = Field(default=0.1, gt=0)
    p: float = Field(default=0.1, ge=0)
    weights: dict[int, float] = Field(default_factory=dict)

    def __init__(self, type: Any = None, **data: Any) -> None:
        # Positional type, like liblinear's own bindings: Solver("L1R_LR").
        super().__init__(type=type, **data)

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = {key: value for key, value in data.items() if value is not None}
        name = solver_name(data.get("type"))
        data["type"] = name
        data.setdefault("eps", _SOLVER_TABLE[name][1])
        return data

    @field_validator("weights", mode="before")
    @classmethod
    def _pairs_to_mapping(cls, value: Any) -> Any:
        # Either a mapping or an iterable of (label, weight) pairs.
        if isinstance(value, Mapping):
            return dict(value.items())
        return dict(value)

    @property
    def type_id(self) -> int:
        return SOLVER_TYPES[self.type]

    @property
    def is_regression(self) -> bool:
        return self.type in REGRESSION_SOLVERS

    @property
    def is_probability(self) -> bool:
        return self.type in PROBABILITY_SOLVERS
