"""
Input vertex: wraps externally supplied data.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ...domain._vertex import VertexKind
from .._tensor import as_tensor, shape_of
from ._vertex import Vertex


class InputVertex(Vertex):
    """
    Source vertex holding a fixed tensor.

    The output is set at construction and never changes. `forward` and
    `backward` are no-ops; gradients reaching an input are discarded.

    Parameters
    ----------
    data : array-like
        Feature tensor. A flat sequence becomes a single row.
    name : str | None, optional
        Vertex identifier.
    """

    kind = VertexKind.INPUT

    def __init__(self, data: Any, *, name: Optional[str] = None) -> None:
        super().__init__(name=name)
        self._data = as_tensor(data, what="input data")
        self._output = self._data

    def _compute_output(self) -> np.ndarray:
        return self._data

    def get_output_shape(self) -> Tuple[int, int]:
        return shape_of(self._data)

    def backward(
        self, upstream_gradient: Optional[np.ndarray] = None
    ) -> Sequence[Optional[np.ndarray]]:
        return ()

    def get_config(self) -> Dict[str, Any]:
        return {"data": self._data.tolist()}
