# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The Model value: solver metadata, class labels and the weight vector W.

W is stored transposed, one row of `rows` values per feature column:

    W[col * rows + row]

    cols = nr_feature, plus one when the model was trained with a bias
    rows = 1 for two-class models (except MCSVM_CS), nr_class otherwise

A model is made by Model.load (model/codec.py) or by Model.train, which
prepares a Problem from a FeatureMatrix and hands it to a trainer callable.
The optimisation itself is somebody else's business; the trainer only has
to return TrainedWeights.

Prediction is a pull iterator over the rows of a FeatureMatrix computing
liblinear's linear decision values.
"""

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import Any, NamedTuple, Optional, Union

import torch

from linearstream.config.loader import ConfigSource
from linearstream.errors import InvalidStateError
from linearstream.logging.logger import get_logger
from linearstream.matrix.core import FeatureMatrix, Problem
from linearstream.matrix.vector import FeatureVector
from linearstream.model.solver import (
    MULTICLASS_SOLVER,
    PROBABILITY_SOLVERS,
    REGRESSION_SOLVERS,
    Solver,
    solver_name,
)
from linearstream.model.storage import HeapWeights, WeightStorage, weights_nbytes
from linearstream.streaming.iterator import PullIterator

logger: logging.Logger = get_logger(__name__)


def weight_shape(solver_type: str, nr_class: int, nr_feature: int, bias: float) -> tuple[int, int]:
    """Return (cols, rows) of the transposed weight matrix."""
    cols = nr_feature + 1 if bias >= 0 else nr_feature
    rows = 1 if nr_class == 2 and solver_type != MULTICLASS_SOLVER else nr_class
    return cols, rows


class TrainedWeights(NamedTuple):
    """
    What a trainer returns.

    `weights` is anything torch.as_tensor accepts, holding cols * rows
    values in the transposed layout. `labels` may be None for regression.
    """

    nr_class: int
    labels: Optional[Sequence[int]]
    weights: Any


Trainer = Callable[[Problem, Solver], TrainedWeights]


class Model:
    """
    A trained linear model.

    Instances own their weight storage. close() releases it (unmapping and
    deleting the temp file for mmap-backed models); using the weights after
    that raises InvalidStateError.
    """

    def __init__(
        self,
        solver_type: str,
        nr_class: int,
        nr_feature: int,
        bias: float,
        labels: Optional[Sequence[int]],
        storage: WeightStorage,
    ) -> None:
        self._solver_type = solver_name(solver_type)
        self._nr_class = nr_class
        self._nr_feature = nr_feature
        self._bias = float(bias)
        self._labels = None if labels is None else tuple(int(label) for label in labels)
        self._cols, self._rows = weight_shape(self._solver_type, nr_class, nr_feature, self._bias)

        if self._labels is not None and len(self._labels) != nr_class:
            raise ValueError(f"Expected {nr_class} labels, got {len(self._labels)}")
        if storage.size != self._cols * self._rows:
            raise ValueError(
                f"Weight storage holds {storage.size} values, expected {self._cols * self._rows}"
            )
        self._storage: Optional[WeightStorage] = storage

    # ------------------------------------------------------------------
    # construction

    @classmethod
    def train(
        cls,
        matrix: FeatureMatrix,
        trainer: Trainer,
        solver: Optional[Solver] = None,
        bias: Optional[float] = None,
    ) -> "Model":
        """
        Train a model on `matrix` with `trainer`.

        Args:
            matrix: Training data.
            trainer: Callable taking (Problem, Solver) and returning TrainedWeights.
            solver: Solver parameters. None picks the default solver.
            bias: Bias feature value. None or a negative value means no bias.

        Returns:
            A heap-backed Model.

        Raises:
            TypeError: `solver` isn't a Solver or the trainer returned
                something other than TrainedWeights.
            ValueError: The trainer's weights or labels have the wrong size.
        """
        if solver is None:
            solver = Solver()
        elif not isinstance(solver, Solver):
            raise TypeError(f"solver must be a Solver instance, got {type(solver).__name__}")

        problem = matrix.as_problem(bias)
        result = trainer(problem, solver)
        if not isinstance(result, TrainedWeights):
            raise TypeError("trainer must return a TrainedWeights instance")

        weights = torch.as_tensor(result.weights, dtype=torch.float64).reshape(-1).clone()
        weights_nbytes(weights.numel())

        model = cls(
            solver.type,
            result.nr_class,
            matrix.width,
            problem.bias,
            result.labels,
            HeapWeights(weights),
        )
        logger.info(
            "Model trained",
            extra={
                "solver_type": model.solver_type,
                "nr_class": model.nr_class,
                "nr_feature": model.nr_feature,
            },
        )
        return model

    @classmethod
    def load(cls, file: Any, mmap: bool = False, config: ConfigSource = None) -> "Model":
        """Read a model from a filename or a readable stream."""
        from linearstream.model.codec import load_model

        return load_model(file, mmap=mmap, config=config)

    def save(self, file: Any, config: ConfigSource = None) -> None:
        """Write the model to a filename or a writable stream."""
        from linearstream.model.codec import save_model

        save_model(self, file, config)

    # ------------------------------------------------------------------
    # attributes

    @property
    def solver_type(self) -> str:
        return self._solver_type

    @property
    def nr_class(self) -> int:
        return self._nr_class

    @property
    def nr_feature(self) -> int:
        return self._nr_feature

    @property
    def bias(self) -> float:
        return self._bias

    @property
    def labels(self) -> Optional[tuple[int, ...]]:
        return self._labels

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def storage_kind(self) -> str:
        """Either "heap" or "mmap"."""
        return self._require_storage().kind

    @property
    def is_regression(self) -> bool:
        return self._solver_type in REGRESSION_SOLVERS

    @property
    def is_probability(self) -> bool:
        return self._solver_type in PROBABILITY_SOLVERS

    def solver(self) -> Solver:
        """A Solver carrying this model's solver type and default parameters."""
        return Solver(self._solver_type)

    def _require_storage(self) -> WeightStorage:
        if self._storage is None:
            raise InvalidStateError("Model is closed")
        return self._storage

    @property
    def w(self) -> torch.Tensor:
        """The flat weight vector, cols * rows values."""
        return self._require_storage().tensor

    @property
    def weights(self) -> torch.Tensor:
        """The weights viewed as a (cols, rows) matrix. No copy is made."""
        return self.w.view(self._cols, self._rows)

    @property
    def closed(self) -> bool:
        return self._storage is None

    # ------------------------------------------------------------------
    # prediction

    def decision_values(self, vector: FeatureVector) -> torch.Tensor:
        """
        Linear decision values of one vector, one per weight row.

        Features beyond nr_feature are ignored, exactly like liblinear does
        for test data wider than the training data. The bias column is
        added when the model has one.
        """
        weights = self.weights
        nr_feature = self._nr_feature
        indices = [node.index - 1 for node in vector if node.index <= nr_feature]
        values = [node.value for node in vector if node.index <= nr_feature]

        decision = torch.tensor(values, dtype=torch.float64) @ weights[
            torch.tensor(indices, dtype=torch.long)
        ]
        if self._bias >= 0:
            decision = decision + weights[nr_feature] * self._bias
        return decision

    def predict_label(self, decision: torch.Tensor) -> float:
        """
        Turn decision values into a label.

        Two-class models go by the sign of the first value (regression
        models return it as is). Any other class count, one included,
        picks the first maximum.
        """
        values = decision.tolist()
        if self._nr_class == 2:
            if self.is_regression:
                return values[0]
            labels = self._require_labels()
            return float(labels[0] if values[0] > 0 else labels[1])

        labels = self._require_labels()
        best = 0
        for position in range(1, len(values)):
            if values[position] > values[best]:
                best = position
        return float(labels[best])

    def decision_map(self, decision: torch.Tensor) -> dict[float, float]:
        """
        Key decision values by the label they vote for.

        A two-class model has a single value, keyed by the first label.
        Models stored without labels (regression) key by row position.
        """
        values = decision.tolist()
        if self._labels is None:
            return {float(position): value for position, value in enumerate(values)}
        return {float(label): value for label, value in zip(self._labels, values)}

    def _require_labels(self) -> tuple[int, ...]:
        if self._labels is None:
            raise InvalidStateError("Classification model has no labels")
        return self._labels

    def predict(self, matrix: FeatureMatrix, label_only: bool = True) -> "PredictionStream":
        """
        Predict every row of `matrix`.

        Returns a PredictionStream yielding the predicted label per row, or
        (label, {label: decision_value}) pairs when `label_only` is False.
        """
        self._require_storage()
        return PredictionStream(self, matrix.rows(), label_only)

    # ------------------------------------------------------------------
    # teardown

    def close(self) -> None:
        """Release the weight storage. Calling it again does nothing."""
        storage, self._storage = self._storage, None
        if storage is not None:
            storage.release()

    def __enter__(self) -> "Model":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Model(solver_type={self._solver_type!r}, nr_class={self._nr_class}, "
            f"nr_feature={self._nr_feature}, bias={self._bias!r})"
        )


class PredictionStream(PullIterator):
    """Pull iterator producing one prediction per matrix row."""

    def __init__(
        self,
        model: Model,
        rows: Iterator[tuple[float, FeatureVector]],
        label_only: bool = True,
    ) -> None:
        super().__init__()
        self._model: Optional[Model] = model
        self._rows: Optional[Iterator[tuple[float, FeatureVector]]] = rows
        self._label_only = label_only

    def _advance(self) -> Optional[Union[float, tuple[float, dict[float, float]]]]:
        if self._model is None or self._rows is None:
            return None
        row = next(self._rows, None)
        if row is None:
            return None

        _, vector = row
        decision = self._model.decision_values(vector)
        label = self._model.predict_label(decision)
        if self._label_only:
            return label
        return label, self._model.decision_map(decision)

    def _dispose(self) -> None:
        self._model = None
        self._rows = None

    def _resources(self) -> list[object]:
        owned: list[object] = []
        if self._model is not None:
            owned.append(self._model)
        if self._rows is not None:
            owned.append(self._rows)
        return owned
