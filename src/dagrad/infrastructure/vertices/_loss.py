"""
Cross-entropy loss over softmax probabilities.

`CrossEntropyLoss` is the sink of a computation graph. Its predecessor
produces raw logits z (a 1 x k row); the loss applies softmax itself and
compares the probabilities p against a one-hot label y:

    p_k = softmax(z)_k
    L   = -sum_k y_k * log(p_k)

Backward
--------
Treating L as a function of p, the gradient is zero everywhere except at the
one-hot index j:

    dL/dp = [0, ..., -1/p_j, ..., 0]

This vector is what `get_gradient()` reports. It is composed analytically with
the softmax Jacobian (dp_i/dz_k = p_i * (delta_ik - p_k)) before being handed
to the prediction vertex:

    dL/dz = p * (dL/dp - <dL/dp, p>) = p - y

With `log_epsilon` set, only `get_gradient()` and the loss value see the
clamped probability; dL/dz is always p - y.

Lifecycle
---------
constructed -> forwarded (loss present) -> backward done. A vertex is used by
exactly one graph build: forwarding or differentiating it twice raises
`StaleStateError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import (
    InvalidLabelError,
    LossNotComputedError,
    NumericalInstabilityError,
    ShapeMismatchError,
    StaleStateError,
)
from ...domain._vertex import VertexKind
from .._config import EngineConfig
from .._tensor import as_vector
from ._activations import softmax
from ._vertex import Vertex

logger = logging.getLogger(__name__)


class CrossEntropyLoss(Vertex):
    """
    Softmax cross-entropy loss vertex (graph sink).

    Parameters
    ----------
    prediction : Vertex
        Vertex producing a 1 x k row of logits.
    label : array-like
        Target distribution of length k, expected to be one-hot.
    log_epsilon : float | None, optional
        If given, probabilities are clamped to at least this value before
        `log` and reciprocal are taken. If None, a non-positive probability
        at a labelled position raises `NumericalInstabilityError`.
    name : str | None, optional
        Vertex identifier.

    Raises
    ------
    ShapeMismatchError
        If the prediction is not a single row, or its width differs from the
        label length.
    """

    kind = VertexKind.CROSS_ENTROPY
    is_sink = True

    def __init__(
        self,
        prediction: Vertex,
        label: Any,
        *,
        log_epsilon: Optional[float] = None,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(prediction, name=name)

        self._label = as_vector(label, what="label")
        rows, width = prediction.get_output_shape()
        if width != self._label.size:
            raise ShapeMismatchError(
                "probability vector size vs label vector size",
                width,
                self._label.size,
            )
        if rows != 1:
            raise ShapeMismatchError(
                f"prediction rows of loss vertex '{self.get_name()}'", 1, rows
            )
        if log_epsilon is not None and not log_epsilon > 0.0:
            raise ValueError(f"log_epsilon must be > 0, got {log_epsilon}")

        self._log_epsilon = log_epsilon
        self._loss: Optional[float] = None
        self._probabilities: Optional[np.ndarray] = None
        self._gradient: Optional[np.ndarray] = None

    # ---- accessors ----
    @property
    def loss(self) -> Optional[float]:
        return self._loss

    @property
    def log_epsilon(self) -> Optional[float]:
        return self._log_epsilon

    def get_label(self) -> np.ndarray:
        return self._label.copy()

    def get_probabilities(self) -> np.ndarray:
        """
        Return a copy of the softmax probabilities computed by `forward`.

        Raises
        ------
        LossNotComputedError
            If `forward` has not run.
        """
        if self._probabilities is None:
            raise LossNotComputedError(f"loss vertex '{self.get_name()}'")
        return self._probabilities.astype(np.float32)

    def get_gradient(self) -> Optional[np.ndarray]:
        """
        Return dL/dp as a 1 x k float64 row, or None before `backward` ran.
        """
        if self._gradient is None:
            return None
        return self._gradient.copy()

    def get_output_shape(self) -> Tuple[int, int]:
        return (1, 1)

    # ---- forward ----
    def forward(self) -> None:
        if self._loss is not None:
            raise StaleStateError(
                f"Loss vertex '{self.get_name()}' was already forwarded; "
                "rebuild the graph for a new pass."
            )
        super().forward()

    def _compute_output(self) -> np.ndarray:
        logits = self.predecessors[0].get_output()[0]
        p = softmax(logits, dtype=np.float64)

        labelled = np.flatnonzero(self._label != 0.0)
        safe = self._guard(p, labelled)
        loss = -float(np.sum(self._label[labelled] * np.log(safe[labelled])))

        self._probabilities = p
        self._loss = loss
        return np.array([[loss]], dtype=np.float32)

    def _guard(self, p: np.ndarray, indices: np.ndarray) -> np.ndarray:
        """
        Return probabilities that are safe to pass to log/reciprocal at
        `indices`, clamping or raising as configured.
        """
        if self._log_epsilon is None:
            bad = indices[p[indices] <= 0.0]
            if bad.size:
                i = int(bad[0])
                raise NumericalInstabilityError(i, float(p[i]))
            return p

        clamped = np.maximum(p, self._log_epsilon)
        if np.any(p[indices] < self._log_epsilon):
            logger.warning(
                "Clamped probabilities of loss vertex '%s' to %g",
                self.get_name(),
                self._log_epsilon,
            )
        return clamped

    # ---- backward ----
    def _positive_index(self) -> int:
        ones = np.flatnonzero(self._label == 1.0)
        if ones.size != 1 or np.count_nonzero(self._label) != 1:
            raise InvalidLabelError(self._label.tolist())
        return int(ones[0])

    def backward(
        self, upstream_gradient: Optional[np.ndarray] = None
    ) -> Sequence[Optional[np.ndarray]]:
        """
        Compute the analytic loss gradient and hand it to the prediction.

        Parameters
        ----------
        upstream_gradient : None
            Must be omitted; the sink derives its own gradient.

        Returns
        -------
        tuple[np.ndarray]
            dL/dz for the prediction vertex, shape (1, k).

        Raises
        ------
        ValueError
            If an upstream gradient is supplied.
        LossNotComputedError
            If `forward` has not run.
        StaleStateError
            If `backward` already ran for this vertex.
        InvalidLabelError
            If the label is not one-hot.
        NumericalInstabilityError
            If p_j is not positive and no epsilon is configured.
        """
        if upstream_gradient is not None:
            raise ValueError(
                "The loss vertex's backward() does not take an upstream gradient."
            )
        if self._loss is None or self._probabilities is None:
            raise LossNotComputedError(f"loss vertex '{self.get_name()}'")
        if self._gradient is not None:
            raise StaleStateError(
                f"Loss vertex '{self.get_name()}' was already differentiated; "
                "rebuild the graph for a new pass."
            )

        j = self._positive_index()
        p = self._probabilities
        safe = self._guard(p, np.array([j]))

        grad_p = np.zeros_like(p)
        grad_p[j] = -1.0 / safe[j]
        self._gradient = grad_p.reshape(1, -1)

        # closed form of the softmax Jacobian-vector product; independent of
        # the clamp, so saturated predictions still receive p - y
        grad_z = p.copy()
        grad_z[j] -= 1.0
        return (grad_z.reshape(1, -1).astype(np.float32),)

    def configure(self, config: EngineConfig) -> None:
        """
        Use the graph's `log_epsilon` unless one was given explicitly.
        """
        if self._log_epsilon is None:
            self._log_epsilon = config.log_epsilon

    def get_config(self) -> Dict[str, Any]:
        return {"label": self._label.tolist(), "log_epsilon": self._log_epsilon}
