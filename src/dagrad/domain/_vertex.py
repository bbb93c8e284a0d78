"""
Vertex interface definitions.

A vertex is one tensor-producing node of the computation graph. The set of
vertex variants is closed (input, parameter, operation kinds and the loss
sink), which is why every variant also reports an explicit `VertexKind` tag;
persistence uses that tag instead of a global type registry.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, Sequence, Tuple, runtime_checkable

from ._tensor import Shape, TensorLike


class VertexKind(Enum):
    """
    Closed set of vertex variants known to the engine.
    """

    INPUT = "input"
    PARAMETER = "parameter"
    AFFINE = "affine"
    RELU = "relu"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    CROSS_ENTROPY = "cross_entropy"


@runtime_checkable
class IVertex(Protocol):
    """
    Capability interface every vertex satisfies.

    Notes
    -----
    - `forward` may only run once every predecessor has been forwarded.
    - `get_output` is valid only after `forward` ran in the current graph.
    - `get_output_shape` is known from construction and must match the
      cached output once it exists.
    """

    kind: VertexKind

    @property
    def predecessors(self) -> Tuple["IVertex", ...]:
        """
        Vertices whose outputs this vertex consumes (shared, not owned).
        """
        ...

    @property
    def is_sink(self) -> bool:
        """
        True only for loss vertices, which terminate the evaluation order.
        """
        ...

    def forward(self) -> None:
        """
        Compute and cache this vertex's output from its predecessors' outputs.
        """
        ...

    def backward(
        self, upstream_gradient: Optional[TensorLike] = None
    ) -> Sequence[Optional[TensorLike]]:
        """
        Apply the local gradient rule.

        Parameters
        ----------
        upstream_gradient : TensorLike | None
            Gradient of the loss with respect to this vertex's output. Must be
            omitted for the sink, which derives its own gradient.

        Returns
        -------
        Sequence[TensorLike | None]
            One gradient per predecessor, in predecessor order. Entries may be
            None for predecessors that receive no gradient.
        """
        ...

    def get_output(self) -> TensorLike:
        """
        Return the cached output tensor.
        """
        ...

    def get_output_shape(self) -> Shape:
        """
        Return (rows, cols) of this vertex's output.
        """
        ...

    def get_name(self) -> str:
        """
        Return a stable identifier used in diagnostics.
        """
        ...
