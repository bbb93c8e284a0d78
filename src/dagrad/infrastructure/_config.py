"""
Engine configuration.

`EngineConfig` gathers the knobs that change how graphs are evaluated. It is a
plain frozen dataclass passed explicitly to the objects that need it; the
environment is consulted only when `EngineConfig.from_env()` is called.

Environment variables
---------------------
DAGRAD_SORT_VERTICES
    "1"/"0". Use Kahn ordering (default) or trust the insertion order.
DAGRAD_VALIDATE_SHAPES
    "1"/"0". Check every forwarded output against its declared shape.
DAGRAD_LOG_EPSILON
    Float > 0. Clamp probabilities to this floor instead of raising
    `NumericalInstabilityError`. Empty or unset disables clamping.
DAGRAD_GRADIENT_WORKERS
    Int >= 1. Worker threads used for element-wise gradient writes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off")


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    raise ValueError(f"{key} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    """
    Evaluation settings shared by graphs, loss vertices and parameters.

    Parameters
    ----------
    sort_vertices : bool
        If True, `Graph` computes a topological order itself (general mode).
        If False, vertices are evaluated in the order they were added
        (simple mode) and the caller is responsible for its validity.
    validate_shapes : bool
        If True, every forwarded output is checked against the vertex's
        declared output shape.
    log_epsilon : float | None
        Floor applied to probabilities before taking logarithms and
        reciprocals. None means a non-positive probability raises
        `NumericalInstabilityError`.
    gradient_workers : int
        Number of threads a parameter may use to write its gradient. Each
        thread writes a disjoint slice.
    """

    sort_vertices: bool = True
    validate_shapes: bool = True
    log_epsilon: Optional[float] = None
    gradient_workers: int = 1

    def __post_init__(self) -> None:
        if self.log_epsilon is not None and not self.log_epsilon > 0.0:
            raise ValueError(f"log_epsilon must be > 0, got {self.log_epsilon}")
        if int(self.gradient_workers) < 1:
            raise ValueError(
                f"gradient_workers must be >= 1, got {self.gradient_workers}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """
        Build a configuration from `DAGRAD_*` environment variables.

        Parameters
        ----------
        environ : Mapping[str, str] | None
            Source mapping. Defaults to `os.environ`.

        Returns
        -------
        EngineConfig
            Configuration with unset variables left at their defaults.

        Raises
        ------
        ValueError
            If a variable is present but malformed.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        raw = env.get("DAGRAD_SORT_VERTICES")
        if raw is not None:
            kwargs["sort_vertices"] = _parse_bool("DAGRAD_SORT_VERTICES", raw)

        raw = env.get("DAGRAD_VALIDATE_SHAPES")
        if raw is not None:
            kwargs["validate_shapes"] = _parse_bool("DAGRAD_VALIDATE_SHAPES", raw)

        raw = env.get("DAGRAD_LOG_EPSILON", "").strip()
        if raw:
            try:
                kwargs["log_epsilon"] = float(raw)
            except ValueError:
                raise ValueError(
                    f"DAGRAD_LOG_EPSILON must be a float, got {raw!r}"
                ) from None

        raw = env.get("DAGRAD_GRADIENT_WORKERS", "").strip()
        if raw:
            try:
                kwargs["gradient_workers"] = int(raw)
            except ValueError:
                raise ValueError(
                    f"DAGRAD_GRADIENT_WORKERS must be an int, got {raw!r}"
                ) from None

        return cls(**kwargs)
