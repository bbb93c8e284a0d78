"""
Graph- and differentiation-related exceptions for dagrad.

This module defines the errors raised while building, evaluating and
differentiating a computation graph. Each error signals a construction or
sequencing bug in the caller's code rather than a transient condition, so none
of them is retried internally: a failed pass leaves the graph in an undefined
state and the caller is expected to rebuild it (`clear_computation_graph`)
before trying again.

All errors derive from `GraphError`, so callers may catch the whole family at
once. Shape-related errors additionally derive from `ValueError`.
"""

from __future__ import annotations

from typing import Sequence


class GraphError(RuntimeError):
    """
    Base class for every error raised by the graph engine.
    """


class ShapeMismatchError(GraphError, ValueError):
    """
    Raised when two shapes or sizes that must agree do not.

    Typical sources are a loss vertex whose prediction width differs from the
    label length, a gradient whose element count differs from the parameter's,
    or a vertex whose computed output disagrees with its declared shape.

    Attributes
    ----------
    what : str
        Short description of the quantity being compared.
    expected : object
        The expected size or shape.
    actual : object
        The size or shape that was actually supplied.
    """

    def __init__(self, what: str, expected: object, actual: object) -> None:
        """
        Initialize the ShapeMismatchError.

        Parameters
        ----------
        what : str
            Description of the compared quantity (e.g., "label length").
        expected : object
            Expected size or shape.
        actual : object
            Actual size or shape.
        """
        super().__init__(f"{what} mismatch: expected {expected}, got {actual}.")
        self.what = what
        self.expected = expected
        self.actual = actual


class CycleDetectedError(GraphError):
    """
    Raised when the registered vertices contain a predecessor cycle.

    Attributes
    ----------
    vertex_names : tuple[str, ...]
        Names of the vertices that could not be ordered.
    """

    def __init__(self, vertex_names: Sequence[str]) -> None:
        """
        Initialize the CycleDetectedError.

        Parameters
        ----------
        vertex_names : Sequence[str]
            Names of the vertices left over once no vertex was ready.
        """
        self.vertex_names = tuple(vertex_names)
        super().__init__(
            "Cycle detected among vertices: " + ", ".join(self.vertex_names) + "."
        )


class UnregisteredVertexError(GraphError):
    """
    Raised when a registered vertex depends on a vertex the graph does not own.
    """

    def __init__(self, vertex_name: str, predecessor_name: str) -> None:
        super().__init__(
            f"Vertex '{vertex_name}' depends on '{predecessor_name}', "
            "which was never added to the graph."
        )
        self.vertex_name = vertex_name
        self.predecessor_name = predecessor_name


class MissingSinkError(GraphError):
    """
    Raised when the last vertex of the evaluation order is not a loss vertex.

    Attributes
    ----------
    vertex_name : str | None
        Name of the offending last vertex, or None for an empty graph.
    """

    def __init__(self, vertex_name: str | None) -> None:
        if vertex_name is None:
            message = "Graph is empty; a loss vertex must be added last."
        else:
            message = (
                f"Last vertex '{vertex_name}' is not a loss vertex; "
                "the evaluation order must end with a sink."
            )
        super().__init__(message)
        self.vertex_name = vertex_name


class LossNotComputedError(GraphError):
    """
    Raised when a backward pass is requested before the forward pass.
    """

    def __init__(self, where: str = "graph") -> None:
        super().__init__(
            f"Loss has not been computed for {where}; run the forward pass first."
        )
        self.where = where


class StaleStateError(GraphError):
    """
    Raised when a single-use step (e.g., a loss forward) is repeated without
    rebuilding the graph.
    """


class OutputNotComputedError(GraphError):
    """
    Raised when a vertex output is read before the vertex was forwarded.
    """

    def __init__(self, vertex_name: str) -> None:
        super().__init__(
            f"Output of vertex '{vertex_name}' is not available; call forward() first."
        )
        self.vertex_name = vertex_name


class InvalidLabelError(GraphError, ValueError):
    """
    Raised when a label vector is not one-hot encoded.
    """

    def __init__(self, label: Sequence[float]) -> None:
        super().__init__(
            f"label vector must be one-hot encoded, got {list(label)!r}."
        )
        self.label = list(label)


class NumericalInstabilityError(GraphError, ArithmeticError):
    """
    Raised when a logarithm or reciprocal of a non-positive probability would
    be taken.

    Attributes
    ----------
    index : int
        Position of the offending probability.
    probability : float
        The offending probability value.
    """

    def __init__(self, index: int, probability: float) -> None:
        super().__init__(
            f"Probability at index {index} is {probability!r}; "
            "log/reciprocal would not be finite. "
            "Configure a log epsilon to clamp instead."
        )
        self.index = index
        self.probability = probability
