"""
Domain-level optimizer contracts for dagrad.

The graph engine never calls an optimizer. An optimizer sits on the other side
of the parameter boundary: it reads each parameter's accumulated gradient,
mutates the parameter value, and resets the gradient before the next graph is
built.

Notes
-----
- Domain contracts must not depend on NumPy or infrastructure implementations.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from ._parameter import IParameter


@runtime_checkable
class IOptimizer(Protocol):
    """
    Optimizer interface contract.

    Required methods
    ----------------
    - `step()` applies one update to every managed parameter.
    - `zero_grad()` resets every managed parameter's gradient.
    """

    def step(self) -> None:
        """
        Apply one optimization step.

        Implementations should skip parameters whose gradient is still zeroed
        (no backward pass touched them since the last reset).
        """
        ...

    def zero_grad(self) -> None:
        """
        Reset the gradients of all managed parameters.
        """
        ...

    @property
    def params(self) -> Iterable[IParameter]:
        """
        Return the parameters managed by this optimizer.
        """
        ...
