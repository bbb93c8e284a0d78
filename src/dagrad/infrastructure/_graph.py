"""
Computation graph orchestration.

`Graph` owns the evaluation order of one forward/backward cycle. Vertices are
registered with `add_vertex` (or `add_subgraph`), the forward pass evaluates
each vertex once in topological order and reads the scalar loss off the sink,
and the backward pass walks the same order in reverse, applying every
vertex's local gradient rule.

Design notes
------------
- Registered vertices live in an arena (a list); a vertex's position in that
  list is its stable handle, used for tie-breaking and cycle reporting.
- Ordering uses Kahn's algorithm. Among vertices that are ready at the same
  time, the one registered first is emitted first.
- During the backward pass every vertex sums the gradients arriving from all
  of its dependents before its own `backward` runs, so fan-out is handled
  for arbitrary DAGs, not just chains.
- Parameter vertices are deferred to the end of the pass. Contributions of
  every vertex wrapping the same `Parameter` are summed, and the parameter is
  updated exactly once.
- The graph never changes a parameter's value and never zeroes gradients;
  both belong to the optimizer.
"""

from __future__ import annotations

import heapq
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..domain._errors import (
    CycleDetectedError,
    GraphError,
    LossNotComputedError,
    MissingSinkError,
    UnregisteredVertexError,
)
from ._config import EngineConfig
from .vertices._parameter_vertex import ParameterVertex
from .vertices._vertex import Vertex

logger = logging.getLogger(__name__)


class Graph:
    """
    Ordered collection of vertices evaluated as one computation.

    Parameters
    ----------
    config : EngineConfig | None, optional
        Evaluation settings. Defaults to `EngineConfig()`.

    Notes
    -----
    A `Graph` object may be reused across mini-batches: call
    `clear_computation_graph()` and register the new batch's vertices. The
    vertices themselves are single-use; the parameters they wrap are not.
    """

    def __init__(self, *, config: Optional[EngineConfig] = None) -> None:
        self._config = config if config is not None else EngineConfig()
        self._vertices: List[Vertex] = []
        self._handles: Dict[int, int] = {}
        self._order: Optional[List[Vertex]] = None
        self._loss: Optional[float] = None

    def __len__(self) -> int:
        return len(self._vertices)

    def __contains__(self, vertex: object) -> bool:
        return id(vertex) in self._handles

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def vertices(self) -> Tuple[Vertex, ...]:
        """
        Registered vertices in insertion order.
        """
        return tuple(self._vertices)

    @property
    def loss(self) -> Optional[float]:
        """
        Scalar loss of the last successful forward pass, or None.
        """
        return self._loss

    # ---- construction ----
    def add_vertex(self, vertex: Vertex) -> int:
        """
        Register a vertex.

        Parameters
        ----------
        vertex : Vertex
            Vertex to append. Registering the same vertex twice is a no-op.

        Returns
        -------
        int
            The vertex's stable handle (its insertion index).

        Raises
        ------
        TypeError
            If `vertex` is not a `Vertex`.
        """
        if not isinstance(vertex, Vertex):
            raise TypeError(f"add_vertex expects a Vertex, got {type(vertex)!r}")

        key = id(vertex)
        if key in self._handles:
            logger.debug("Vertex '%s' already registered", vertex.get_name())
            return self._handles[key]

        vertex.configure(self._config)
        handle = len(self._vertices)
        self._vertices.append(vertex)
        self._handles[key] = handle
        self._order = None
        self._loss = None
        return handle

    def add_subgraph(self, sink: Vertex) -> List[int]:
        """
        Register `sink` and every vertex it transitively depends on.

        Vertices are added predecessors-first (depth-first post-order), so the
        resulting insertion order is already a valid evaluation order.

        Returns
        -------
        list[int]
            Handles of every vertex reachable from `sink`, in the order visited.
        """
        post_order: List[Vertex] = []
        visited: set[int] = set()
        stack: List[Tuple[Vertex, int]] = [(sink, 0)]

        while stack:
            v, i = stack.pop()
            if i == 0:
                if id(v) in visited:
                    continue
                visited.add(id(v))
            if i < len(v.predecessors):
                stack.append((v, i + 1))
                p = v.predecessors[i]
                if id(p) not in visited:
                    stack.append((p, 0))
            else:
                post_order.append(v)

        return [self.add_vertex(v) for v in post_order]

    def get_handle(self, vertex: Vertex) -> int:
        """
        Return the handle of a registered vertex.

        Raises
        ------
        KeyError
            If the vertex is not registered.
        """
        try:
            return self._handles[id(vertex)]
        except KeyError:
            raise KeyError(f"Vertex '{vertex.get_name()}' is not registered") from None

    # ---- ordering ----
    def _predecessor_handles(self, handle: int) -> List[int]:
        v = self._vertices[handle]
        out: List[int] = []
        for p in v.predecessors:
            ph = self._handles.get(id(p))
            if ph is None:
                raise UnregisteredVertexError(v.get_name(), p.get_name())
            out.append(ph)
        return out

    def compute_topological_order(self) -> List[Vertex]:
        """
        Order the registered vertices so every predecessor comes first.

        Returns
        -------
        list[Vertex]
            Kahn ordering with insertion-order tie-breaking.

        Raises
        ------
        UnregisteredVertexError
            If a vertex depends on a vertex that was never registered.
        CycleDetectedError
            If the predecessor relation contains a cycle.
        """
        n = len(self._vertices)
        in_degree = [0] * n
        dependents: List[List[int]] = [[] for _ in range(n)]

        for h in range(n):
            for ph in self._predecessor_handles(h):
                in_degree[h] += 1
                dependents[ph].append(h)

        ready = [h for h in range(n) if in_degree[h] == 0]
        heapq.heapify(ready)

        order: List[Vertex] = []
        while ready:
            h = heapq.heappop(ready)
            order.append(self._vertices[h])
            for d in dependents[h]:
                in_degree[d] -= 1
                if in_degree[d] == 0:
                    heapq.heappush(ready, d)

        if len(order) != n:
            stuck = [self._vertices[h].get_name() for h in range(n) if in_degree[h] > 0]
            raise CycleDetectedError(stuck)

        return order

    def _insertion_order(self) -> List[Vertex]:
        for h in range(len(self._vertices)):
            for ph in self._predecessor_handles(h):
                if ph >= h:
                    raise GraphError(
                        f"Vertex '{self._vertices[h].get_name()}' was added before its "
                        f"predecessor '{self._vertices[ph].get_name()}'; add vertices "
                        "in dependency order or enable sort_vertices."
                    )
        return list(self._vertices)

    def evaluation_order(self) -> List[Vertex]:
        """
        Return (and cache) the order used by the forward and backward passes.
        """
        if self._order is None:
            if self._config.sort_vertices:
                self._order = self.compute_topological_order()
            else:
                self._order = self._insertion_order()
            logger.debug(
                "Evaluation order: %s", [v.get_name() for v in self._order]
            )
        return list(self._order)

    # ---- passes ----
    def launch_forward_pass(self) -> float:
        """
        Forward every vertex once and return the scalar loss.

        Returns
        -------
        float
            Value of the sink vertex's output.

        Raises
        ------
        MissingSinkError
            If the graph is empty or its last vertex is not a loss vertex.
        ShapeMismatchError
            If shape validation is enabled and a vertex output disagrees with
            its declared shape.
        """
        self._loss = None
        order = self.evaluation_order()
        if not order:
            raise MissingSinkError(None)
        sink = order[-1]
        if not sink.is_sink:
            raise MissingSinkError(sink.get_name())

        for v in order:
            v.forward()
            if self._config.validate_shapes:
                v.check_output_shape()

        self._loss = float(np.asarray(sink.get_output()).reshape(-1)[0])
        logger.debug("Forward pass over %d vertices, loss=%g", len(order), self._loss)
        return self._loss

    def launch_backward_pass(self) -> None:
        """
        Propagate gradients from the sink back to every reachable parameter.

        Raises
        ------
        LossNotComputedError
            If no forward pass succeeded since the graph was last modified.
        """
        if self._loss is None or self._order is None:
            raise LossNotComputedError()

        order = self._order
        for v in order:
            v.reset_received_gradient()

        sink = order[-1]
        pending: Dict[int, Tuple[ParameterVertex, np.ndarray]] = {}

        for v in reversed(order):
            if v is sink:
                grads = v.backward()
            else:
                g = v.received_gradient
                if g is None:
                    logger.warning(
                        "Vertex '%s' does not feed the loss; no gradient reaches it",
                        v.get_name(),
                    )
                    continue
                if isinstance(v, ParameterVertex):
                    key = id(v.parameter)
                    if key in pending:
                        first, total = pending[key]
                        pending[key] = (first, total + g)
                    else:
                        pending[key] = (v, g)
                    continue
                grads = v.backward(g)

            self._distribute(v, grads)

        for wrapper, total in pending.values():
            wrapper.backward(total)

        logger.debug(
            "Backward pass over %d vertices updated %d parameters",
            len(order),
            len(pending),
        )

    @staticmethod
    def _distribute(v: Vertex, grads: Sequence[Optional[np.ndarray]]) -> None:
        preds = v.predecessors
        if len(grads) != len(preds):
            raise RuntimeError(
                f"Vertex '{v.get_name()}' returned {len(grads)} gradients "
                f"for {len(preds)} predecessors."
            )
        for p, g in zip(preds, grads):
            if g is not None:
                p.receive_gradient(g)

    def clear_computation_graph(self) -> None:
        """
        Drop every registered vertex and the cached loss.

        Parameters wrapped by the dropped vertices are left untouched.
        """
        self._vertices.clear()
        self._handles.clear()
        self._order = None
        self._loss = None
