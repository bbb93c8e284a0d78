"""
Infrastructure vertex base class.

`Vertex` implements the bookkeeping shared by every concrete vertex:

- the predecessor tuple (shared references, never owned),
- the cached output populated by `forward`,
- the declared output shape, inferred at construction,
- the per-pass accumulator that sums the upstream gradients arriving from
  every dependent edge before `backward` runs.

Subclasses implement `_compute_output` and `backward`.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import OutputNotComputedError, ShapeMismatchError
from ...domain._vertex import IVertex, VertexKind
from .._config import EngineConfig
from .._tensor import as_tensor, shape_of

_vertex_ids = itertools.count()


class Vertex(IVertex, ABC):
    """
    Base class for graph vertices.

    Parameters
    ----------
    *predecessors : Vertex
        Vertices whose outputs feed this one, in the order the local gradient
        rule expects them.
    name : str | None, optional
        Stable identifier. Defaults to "<kind>_<n>".

    Notes
    -----
    - A vertex may be the predecessor of many dependents. The graph hands
      each dependent's contribution to `receive_gradient`, which sums them.
    - `is_sink` is False for every vertex except loss vertices.
    """

    kind: VertexKind
    is_sink: bool = False

    def __init__(self, *predecessors: "Vertex", name: Optional[str] = None) -> None:
        for p in predecessors:
            if not isinstance(p, Vertex):
                raise TypeError(
                    f"predecessors must be Vertex instances, got {type(p)!r}"
                )
        self._predecessors: Tuple[Vertex, ...] = tuple(predecessors)
        self._name = name if name is not None else f"{self.kind.value}_{next(_vertex_ids)}"
        self._output: Optional[np.ndarray] = None
        self._received: Optional[np.ndarray] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"

    @property
    def predecessors(self) -> Tuple["Vertex", ...]:
        return self._predecessors

    def get_name(self) -> str:
        return self._name

    # ---- forward ----
    def forward(self) -> None:
        """
        Recompute and cache the output from the predecessors' current outputs.

        Raises
        ------
        OutputNotComputedError
            If a predecessor has not been forwarded yet.
        """
        self._output = self._compute_output()

    @abstractmethod
    def _compute_output(self) -> np.ndarray:
        """
        Return this vertex's output as a fresh 2-D float32 array.
        """
        ...

    def get_output(self) -> np.ndarray:
        """
        Return the cached output tensor.

        Raises
        ------
        OutputNotComputedError
            If `forward` has not run.
        """
        if self._output is None:
            raise OutputNotComputedError(self._name)
        return self._output

    @property
    def has_output(self) -> bool:
        return self._output is not None

    @abstractmethod
    def get_output_shape(self) -> Tuple[int, int]:
        """
        Return the declared (rows, cols) of this vertex's output.
        """
        ...

    def check_output_shape(self) -> None:
        """
        Verify that the cached output matches the declared shape.

        Raises
        ------
        ShapeMismatchError
            If the shapes differ.
        """
        actual = shape_of(self.get_output())
        expected = self.get_output_shape()
        if actual != expected:
            raise ShapeMismatchError(
                f"output shape of vertex '{self._name}'", expected, actual
            )

    # ---- backward ----
    @abstractmethod
    def backward(
        self, upstream_gradient: Optional[np.ndarray] = None
    ) -> Sequence[Optional[np.ndarray]]:
        """
        Apply the local chain rule and return one gradient per predecessor.
        """
        ...

    def _require_upstream(self, upstream_gradient: Optional[np.ndarray]) -> np.ndarray:
        if upstream_gradient is None:
            raise ValueError(
                f"Vertex '{self._name}' needs an upstream gradient for backward()."
            )
        g = as_tensor(upstream_gradient, what="upstream gradient")
        if shape_of(g) != self.get_output_shape():
            raise ShapeMismatchError(
                f"upstream gradient shape of vertex '{self._name}'",
                self.get_output_shape(),
                shape_of(g),
            )
        return g

    def reset_received_gradient(self) -> None:
        """
        Clear the per-pass upstream accumulator.
        """
        self._received = None

    def receive_gradient(self, gradient: np.ndarray) -> None:
        """
        Add one dependent edge's contribution to the upstream accumulator.

        Raises
        ------
        ShapeMismatchError
            If `gradient` does not have this vertex's output shape.
        """
        g = as_tensor(gradient, what="gradient")
        if shape_of(g) != self.get_output_shape():
            raise ShapeMismatchError(
                f"gradient received by vertex '{self._name}'",
                self.get_output_shape(),
                shape_of(g),
            )
        if self._received is None:
            self._received = g
        else:
            self._received = self._received + g

    @property
    def received_gradient(self) -> Optional[np.ndarray]:
        """
        Sum of every upstream gradient received during the current pass.
        """
        return self._received

    def configure(self, config: EngineConfig) -> None:
        """
        Adopt graph-wide settings. Called by `Graph.add_vertex`.
        """

    # ---- persistence ----
    def get_config(self) -> Dict[str, Any]:
        """
        Return the JSON-safe constructor settings of this vertex.

        Predecessors are not included; persistence records them as indices.
        """
        return {}
