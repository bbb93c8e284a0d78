"""
Activation vertices and the softmax helper.

This module contains the element-wise activation vertices (`ReLUVertex`,
`SigmoidVertex`, `TanhVertex`) and the pure `softmax` function used by the
cross-entropy loss.

Each activation vertex has exactly one predecessor, keeps its input's shape,
and implements backward as:

    dL/dx = g * f'(x)

where `g` is the upstream gradient and `f'` the activation's derivative,
evaluated from values cached during forward.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from ...domain._vertex import VertexKind
from ._vertex import Vertex


def softmax(logits: np.ndarray, *, dtype: Any = np.float32) -> np.ndarray:
    """
    Convert logits to probabilities along the last axis.

    Parameters
    ----------
    logits : np.ndarray
        A vector or a 2-D array whose rows are independent logit vectors.
    dtype : numpy dtype, optional
        Result dtype. The computation itself always runs in float64.

    Returns
    -------
    np.ndarray
        Array of the same shape whose rows are non-negative and sum to 1.

    Notes
    -----
    The row maximum is subtracted before exponentiation, which leaves the
    result unchanged and keeps `exp` from overflowing.
    """
    z = np.asarray(logits, dtype=np.float64)
    shifted = z - np.max(z, axis=-1, keepdims=True)
    e = np.exp(shifted)
    return (e / np.sum(e, axis=-1, keepdims=True)).astype(dtype)


class _ElementwiseActivation(Vertex):
    """
    Shared plumbing for single-input, shape-preserving activations.
    """

    def __init__(self, x: Vertex, *, name: Optional[str] = None) -> None:
        super().__init__(x, name=name)

    def get_output_shape(self) -> Tuple[int, int]:
        return self.predecessors[0].get_output_shape()

    def _compute_output(self) -> np.ndarray:
        return self._apply(self.predecessors[0].get_output())

    def backward(
        self, upstream_gradient: Optional[np.ndarray] = None
    ) -> Sequence[Optional[np.ndarray]]:
        g = self._require_upstream(upstream_gradient)
        return (g * self._derivative(),)

    @abstractmethod
    def _apply(self, x: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def _derivative(self) -> np.ndarray:
        """
        Return f'(x) for the most recent forward input.
        """
        ...


class ReLUVertex(_ElementwiseActivation):
    """
    Rectified linear unit: max(x, 0).

    The derivative at exactly 0 is taken as 0.
    """

    kind = VertexKind.RELU

    def _apply(self, x: np.ndarray) -> np.ndarray:
        return np.maximum(x, 0.0).astype(np.float32)

    def _derivative(self) -> np.ndarray:
        x = self.predecessors[0].get_output()
        return (x > 0.0).astype(np.float32)


class SigmoidVertex(_ElementwiseActivation):
    """
    Logistic sigmoid: 1 / (1 + exp(-x)), with derivative s * (1 - s).
    """

    kind = VertexKind.SIGMOID

    def _apply(self, x: np.ndarray) -> np.ndarray:
        return (1.0 / (1.0 + np.exp(-x.astype(np.float64)))).astype(np.float32)

    def _derivative(self) -> np.ndarray:
        s = self.get_output()
        return s * (1.0 - s)


class TanhVertex(_ElementwiseActivation):
    """
    Hyperbolic tangent, with derivative 1 - tanh(x)^2.
    """

    kind = VertexKind.TANH

    def _apply(self, x: np.ndarray) -> np.ndarray:
        return np.tanh(x).astype(np.float32)

    def _derivative(self) -> np.ndarray:
        t = self.get_output()
        return 1.0 - t * t
