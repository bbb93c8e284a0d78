"""
Concrete trainable parameter implementation.

This module defines `Parameter`, the infrastructure implementation of the
domain contract `IParameter`. A `Parameter` owns a 2-D value tensor and a flat
gradient accumulator with the same element count. It outlives every graph
that references it: each mini-batch builds a fresh graph whose parameter
vertices wrap the same `Parameter` objects.

Design notes
------------
- Accessors hand out copies; the only ways to change the gradient are
  `update_gradient` and `zero_out_gradient`, and the only way to change the
  value is `set_value` (used by optimizers).
- `update_gradient` overwrites. The graph sums every contribution reaching a
  parameter during one backward pass and calls `update_gradient` once, which
  keeps parameters shared by several vertices correct.
- Gradient writes may be split across worker threads. Each thread copies a
  disjoint slice of the flat buffer, so no element is written twice.
"""

from __future__ import annotations

import itertools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from ..domain._errors import ShapeMismatchError
from ..domain._parameter import IParameter, ParameterType
from ._tensor import DTYPE, as_tensor, as_vector, shape_of

_param_ids = itertools.count()


class Parameter(IParameter):
    """
    Trainable 2-D tensor with a persistent gradient accumulator.

    Parameters
    ----------
    value : array-like
        Initial value. Nested sequences or a 2-D array; a flat sequence is
        treated as a single-row (bias) value.
    name : str | None, optional
        Identifier used in diagnostics and snapshots. Defaults to a unique
        "param_<n>".
    workers : int, optional
        Threads used to write the gradient buffer. Defaults to 1.

    Raises
    ------
    ValueError
        If `value` is empty, ragged, or not 2-D, or if `workers < 1`.
    """

    def __init__(
        self, value: Any, *, name: Optional[str] = None, workers: int = 1
    ) -> None:
        self._value = as_tensor(value, what="parameter value")
        self._gradient = np.zeros(self._value.size, dtype=DTYPE)
        self._zeroed: bool = True
        self._name = name if name is not None else f"param_{next(_param_ids)}"

        if int(workers) < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self._workers = int(workers)

    def __repr__(self) -> str:
        rows, cols = self.get_parameter_shape()
        return f"Parameter(name={self._name!r}, shape=({rows}, {cols}))"

    @property
    def name(self) -> str:
        return self._name

    @property
    def zeroed(self) -> bool:
        """
        True while the gradient holds the all-zero reset state.
        """
        return self._zeroed

    @property
    def workers(self) -> int:
        return self._workers

    # ---- value ----
    def get_value(self) -> np.ndarray:
        """
        Return a copy of the current value.

        Returns
        -------
        np.ndarray
            (rows, cols) float32 array that does not alias internal storage.
        """
        return self._value.copy()

    def set_value(self, value: Any) -> None:
        """
        Replace the parameter value.

        Parameters
        ----------
        value : array-like
            New value with exactly the current shape.

        Raises
        ------
        ShapeMismatchError
            If the new value's shape differs from the current one.
        """
        new_value = as_tensor(value, what="parameter value")
        if new_value.shape != self._value.shape:
            raise ShapeMismatchError(
                f"value shape of parameter '{self._name}'",
                self.get_parameter_shape(),
                shape_of(new_value),
            )
        self._value = new_value

    # ---- gradient ----
    def get_gradient(self) -> np.ndarray:
        """
        Return a copy of the flat gradient buffer (row-major order).
        """
        return self._gradient.copy()

    def get_gradient_matrix(self) -> np.ndarray:
        """
        Return a copy of the gradient reshaped to the value's shape.
        """
        return self._gradient.reshape(self._value.shape).copy()

    def update_gradient(
        self,
        gradient: Sequence[float] | np.ndarray,
        *,
        workers: Optional[int] = None,
    ) -> None:
        """
        Overwrite the stored gradient.

        Parameters
        ----------
        gradient : array-like
            New gradient with exactly `get_parameter_count()` elements. Any
            shape is accepted; elements are read in row-major order.
        workers : int | None, optional
            Thread count for this write only. Defaults to the parameter's own
            `workers` setting.

        Raises
        ------
        ShapeMismatchError
            If the element count differs from the parameter's.
        """
        flat = as_vector(gradient, what="gradient")
        if flat.size != self._gradient.size:
            raise ShapeMismatchError(
                f"gradient size of parameter '{self._name}'",
                self._gradient.size,
                flat.size,
            )

        n = self._workers if workers is None else int(workers)
        if n < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if n == 1 or flat.size < n:
            self._gradient[:] = flat
        else:
            self._parallel_copy(flat, n)

        self._zeroed = False

    def _parallel_copy(self, flat: np.ndarray, workers: int) -> None:
        bounds = np.linspace(0, flat.size, workers + 1, dtype=np.int64)

        def copy_slice(start: int, stop: int) -> None:
            self._gradient[start:stop] = flat[start:stop]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(copy_slice, int(lo), int(hi))
                for lo, hi in zip(bounds[:-1], bounds[1:])
            ]
            for f in futures:
                f.result()

    def zero_out_gradient(self) -> None:
        """
        Reset the gradient accumulator to zeros.

        Notes
        -----
        Calling this repeatedly is cheap: an already-zeroed buffer is left
        untouched.
        """
        if not self._zeroed:
            self._gradient.fill(0.0)
        self._zeroed = True

    # ---- derived queries ----
    def get_parameter_count(self) -> int:
        """
        Return the number of trainable scalars (rows * cols).
        """
        return int(self._value.size)

    def get_parameter_shape(self) -> Tuple[int, int]:
        return shape_of(self._value)

    def get_parameter_type(self) -> ParameterType:
        """
        Infer the parameter kind from its row count.

        Returns
        -------
        ParameterType
            BIAS for single-row values, WEIGHT otherwise.
        """
        if self._value.shape[0] == 1:
            return ParameterType.BIAS
        return ParameterType.WEIGHT
