"""
Affine (fully connected) operation vertex.

Implements:

    out = x @ W + b

with x of shape (n, in), W of shape (in, out) and an optional bias b of shape
(1, out) added to every row.

Backward:

    dL/dx = g @ W^T
    dL/dW = x^T @ g
    dL/db = sum over rows of g
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._vertex import VertexKind
from ._vertex import Vertex


class AffineVertex(Vertex):
    """
    Affine transform of an input vertex by weight (and bias) vertices.

    Parameters
    ----------
    x : Vertex
        Input features, shape (n, in).
    weight : Vertex
        Weight matrix, shape (in, out). Usually a `ParameterVertex`.
    bias : Vertex | None, optional
        Bias row, shape (1, out). Usually a `ParameterVertex`.
    name : str | None, optional
        Vertex identifier.

    Raises
    ------
    ShapeMismatchError
        If the declared shapes of the operands are incompatible.
    """

    kind = VertexKind.AFFINE

    def __init__(
        self,
        x: Vertex,
        weight: Vertex,
        bias: Optional[Vertex] = None,
        *,
        name: Optional[str] = None,
    ) -> None:
        preds = (x, weight) if bias is None else (x, weight, bias)
        super().__init__(*preds, name=name)

        n, in_features = x.get_output_shape()
        w_in, out_features = weight.get_output_shape()
        if w_in != in_features:
            raise ShapeMismatchError(
                f"weight rows of affine vertex '{self.get_name()}'",
                in_features,
                w_in,
            )
        if bias is not None and bias.get_output_shape() != (1, out_features):
            raise ShapeMismatchError(
                f"bias shape of affine vertex '{self.get_name()}'",
                (1, out_features),
                bias.get_output_shape(),
            )
        self._shape = (n, out_features)

    @property
    def has_bias(self) -> bool:
        return len(self.predecessors) == 3

    def get_output_shape(self) -> Tuple[int, int]:
        return self._shape

    def _compute_output(self) -> np.ndarray:
        x = self.predecessors[0].get_output()
        w = self.predecessors[1].get_output()
        out = x @ w
        if self.has_bias:
            out = out + self.predecessors[2].get_output()
        return out

    def backward(
        self, upstream_gradient: Optional[np.ndarray] = None
    ) -> Sequence[Optional[np.ndarray]]:
        g = self._require_upstream(upstream_gradient)
        x = self.predecessors[0].get_output()
        w = self.predecessors[1].get_output()

        grad_x = g @ w.T
        grad_w = x.T @ g
        if not self.has_bias:
            return grad_x, grad_w

        grad_b = g.sum(axis=0, keepdims=True)
        return grad_x, grad_w, grad_b
