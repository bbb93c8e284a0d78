"""
Domain-level structural typing for tensor values.

Every vertex output, parameter value and parameter gradient in dagrad is a
2-D rectangular array of reals. This module names that contract without
importing NumPy, so domain interfaces can describe tensor-valued data while
the infrastructure layer picks the concrete storage.

A 1-row tensor represents a vector.
"""

from __future__ import annotations

from typing import Any, Protocol, Tuple, runtime_checkable

Shape = Tuple[int, int]
"""(rows, columns) of a 2-D tensor."""


@runtime_checkable
class TensorLike(Protocol):
    """
    Structural interface for 2-D array-like tensor values.

    `numpy.ndarray` satisfies this protocol. Only the members the graph engine
    actually relies on are listed.
    """

    @property
    def shape(self) -> Tuple[int, ...]:
        """
        Dimension sizes of the tensor.
        """
        ...

    @property
    def size(self) -> int:
        """
        Total number of elements.
        """
        ...

    def copy(self) -> TensorLike:
        """
        Return an independent copy of the tensor.
        """
        ...

    def ravel(self) -> TensorLike:
        """
        Return the elements flattened in row-major order.
        """
        ...

    def tolist(self) -> list[Any]:
        """
        Convert to nested Python lists.
        """
        ...
