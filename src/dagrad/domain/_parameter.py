"""
Trainable parameter interface definitions.

This module defines the domain-level interface for trainable parameters. A
parameter is a long-lived leaf of the computation: it is created once per
trainable weight or bias, referenced (never owned) by the vertices of many
successive graphs, and carries a persistent gradient accumulator that the
backward pass writes and the optimizer reads.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, Sequence, runtime_checkable

from ._tensor import Shape, TensorLike


class ParameterType(Enum):
    """
    Kind of a trainable parameter, inferred from its shape.

    A parameter with a single row is a bias; anything taller is a weight.
    """

    WEIGHT = "weight"
    BIAS = "bias"


@runtime_checkable
class IParameter(Protocol):
    """
    Domain-level interface for trainable parameters.

    Invariants
    ----------
    - The value is never empty (at least 1 x 1).
    - The flat gradient always holds exactly rows * cols elements.
    - Read accessors return copies, so callers cannot bypass the gradient
      update contract by mutating internal storage.

    Notes
    -----
    - The value is mutated only by the optimizer (`set_value`).
    - The gradient is mutated only by `update_gradient` and
      `zero_out_gradient`.
    """

    @property
    def name(self) -> str:
        """
        Stable identifier used in diagnostics and persisted snapshots.
        """
        ...

    def get_value(self) -> TensorLike:
        """
        Return a copy of the parameter value (rows x cols).
        """
        ...

    def set_value(self, value: TensorLike) -> None:
        """
        Replace the parameter value. The shape must not change.
        """
        ...

    def get_gradient(self) -> TensorLike:
        """
        Return a copy of the flat gradient (rows * cols elements, row-major).
        """
        ...

    def update_gradient(self, gradient: Sequence[float] | TensorLike) -> None:
        """
        Overwrite the stored gradient with `gradient`.

        The element count must equal the parameter's element count. The graph
        calls this exactly once per parameter per backward pass, after summing
        every contribution reaching the parameter.
        """
        ...

    def zero_out_gradient(self) -> None:
        """
        Reset the gradient accumulator to all zeros.
        """
        ...

    def get_parameter_count(self) -> int:
        """
        Return rows * cols.
        """
        ...

    def get_parameter_shape(self) -> Shape:
        """
        Return (rows, cols).
        """
        ...

    def get_parameter_type(self) -> ParameterType:
        """
        Return `ParameterType.BIAS` for single-row values, else WEIGHT.
        """
        ...
