"""
Parameter vertex: exposes a trainable `Parameter` inside one graph.

A fresh `ParameterVertex` is built per graph, while the wrapped `Parameter`
lives across graphs. The vertex never owns the parameter.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ...domain._vertex import VertexKind
from .._config import EngineConfig
from .._parameter import Parameter
from ._vertex import Vertex


class ParameterVertex(Vertex):
    """
    Leaf vertex whose output is a copy of a parameter's current value.

    Parameters
    ----------
    parameter : Parameter
        The wrapped parameter (referenced, not owned).
    name : str | None, optional
        Vertex identifier. Defaults to the parameter's name.

    Notes
    -----
    `backward` writes the upstream gradient into the parameter through
    `Parameter.update_gradient`. Inside a `Graph` the backward pass sums the
    contributions of every vertex wrapping the same parameter and calls
    `backward` on one of them, so the parameter is updated once per pass.
    """

    kind = VertexKind.PARAMETER

    def __init__(self, parameter: Parameter, *, name: Optional[str] = None) -> None:
        if not isinstance(parameter, Parameter):
            raise TypeError(f"parameter must be a Parameter, got {type(parameter)!r}")
        self._parameter = parameter
        self._gradient_workers = 1
        super().__init__(name=name if name is not None else parameter.name)

    @property
    def parameter(self) -> Parameter:
        return self._parameter

    def _compute_output(self) -> np.ndarray:
        return self._parameter.get_value()

    def get_output_shape(self) -> Tuple[int, int]:
        return self._parameter.get_parameter_shape()

    def backward(
        self, upstream_gradient: Optional[np.ndarray] = None
    ) -> Sequence[Optional[np.ndarray]]:
        g = self._require_upstream(upstream_gradient)
        self._parameter.update_gradient(
            g.ravel(),
            workers=max(self._parameter.workers, self._gradient_workers),
        )
        return ()

    def configure(self, config: EngineConfig) -> None:
        self._gradient_workers = config.gradient_workers

    def get_config(self) -> Dict[str, Any]:
        return {"parameter": self._parameter.name}
