"""
Stochastic Gradient Descent (SGD) optimizer implementation.

This module provides a minimal SGD optimizer for dagrad. It sits on the far
side of the parameter boundary: it reads each parameter's accumulated
gradient, writes the new value through `Parameter.set_value`, and resets the
gradient with `Parameter.zero_out_gradient`. The graph engine never calls it.

Design notes
------------
- Parameters whose gradient is still zeroed are skipped, so parameters that
  no backward pass touched keep their values.
- Momentum, Nesterov, and other SGD variants are intentionally omitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .._parameter import Parameter


@dataclass
class SGD:
    """
    Stochastic Gradient Descent (SGD) optimizer.

    Update rule
    -----------
    For each parameter ``p`` with gradient ``g`` (reshaped to ``p``'s shape):

    - If ``weight_decay > 0`` (classical L2 regularization):
        ``g <- g + weight_decay * p``
    - Parameter update:
        ``p <- p - lr * g``

    Parameters
    ----------
    params : Iterable[Parameter]
        Parameters to be optimized. The iterable is consumed and stored.
    lr : float, optional
        Learning rate. Must be positive. Defaults to 1e-3.
    weight_decay : float, optional
        Classical L2 weight decay coefficient. Must be non-negative.
    """

    params: Sequence[Parameter]
    lr: float = 1e-3
    weight_decay: float = 0.0

    def __init__(
        self,
        params: Iterable[Parameter],
        *,
        lr: float = 1e-3,
        weight_decay: float = 0.0,
    ) -> None:
        self.params = list(params)
        self.lr = float(lr)
        self.weight_decay = float(weight_decay)

        if self.lr <= 0.0:
            raise ValueError(f"lr must be > 0, got {self.lr}")
        if self.weight_decay < 0.0:
            raise ValueError(f"weight_decay must be >= 0, got {self.weight_decay}")

    def zero_grad(self) -> None:
        """
        Reset the gradients of all managed parameters.
        """
        for p in self.params:
            p.zero_out_gradient()

    def step(self) -> None:
        """
        Apply one SGD update to every parameter holding a gradient.
        """
        for p in self.params:
            if p.zeroed:
                continue

            value = p.get_value()
            g = p.get_gradient_matrix()

            if self.weight_decay != 0.0:
                g = g + self.weight_decay * value

            p.set_value(value - self.lr * g)
