"""
NumPy-backed tensor helpers.

dagrad does not wrap arrays in a tensor class: every tensor value is a 2-D
`numpy.ndarray` of dtype `float32`. The helpers here normalize user data into
that form and are the only place where the storage dtype is decided.
"""

from __future__ import annotations

from typing import Any, Tuple

import numpy as np

DTYPE = np.float32


def as_tensor(data: Any, *, what: str = "tensor") -> np.ndarray:
    """
    Convert array-like data into a 2-D float32 tensor.

    Parameters
    ----------
    data : Any
        Nested sequences, a flat sequence, or an ndarray. A flat (1-D) input
        becomes a single-row tensor.
    what : str, optional
        Name used in error messages.

    Returns
    -------
    np.ndarray
        A C-contiguous float32 array with exactly two dimensions. The result
        never aliases `data`.

    Raises
    ------
    ValueError
        If `data` is ragged, empty, or has more than two dimensions.
    """
    try:
        arr = np.array(data, dtype=DTYPE, copy=True)
    except ValueError as e:
        raise ValueError(f"{what} must be rectangular: {e}") from e

    if arr.ndim == 0:
        arr = arr.reshape(1, 1)
    elif arr.ndim == 1:
        arr = arr.reshape(1, -1)
    elif arr.ndim != 2:
        raise ValueError(f"{what} must be 2-D, got shape {arr.shape}")

    if arr.size == 0:
        raise ValueError(f"{what} must not be empty, got shape {arr.shape}")

    return np.ascontiguousarray(arr)


def as_vector(data: Any, *, what: str = "vector") -> np.ndarray:
    """
    Convert array-like data into a flat float32 vector (copy).
    """
    arr = np.array(data, dtype=DTYPE, copy=True).reshape(-1)
    if arr.size == 0:
        raise ValueError(f"{what} must not be empty")
    return arr


def shape_of(t: np.ndarray) -> Tuple[int, int]:
    """
    Return the (rows, cols) shape of a 2-D tensor as plain ints.
    """
    rows, cols = t.shape
    return int(rows), int(cols)
