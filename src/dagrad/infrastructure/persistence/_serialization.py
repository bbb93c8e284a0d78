"""
JSON snapshots of parameters and graph structure.

Parameters are stored with their value, gradient and zeroed flag. Graphs are
stored as a list of vertex records in evaluation order:

    {
      "kind": "affine",            # VertexKind value
      "name": "fc1",
      "predecessors": [0, 1, 2],   # positions of earlier records
      "config": {...}              # Vertex.get_config()
    }

Vertices are rebuilt through `_BUILDERS`, a fixed table keyed by `VertexKind`.
There is no process-wide type registry: the set of vertex kinds is closed, and
the table is consulted only for the duration of one `build_graph` call.

Parameter vertices reference their parameter by name, so one snapshot can
hold several graphs over the same parameters.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ...domain._vertex import VertexKind
from .._config import EngineConfig
from .._graph import Graph
from .._parameter import Parameter
from ..vertices import (
    AffineVertex,
    CrossEntropyLoss,
    InputVertex,
    ParameterVertex,
    ReLUVertex,
    SigmoidVertex,
    TanhVertex,
    Vertex,
)
from ._payload import ndarray_to_payload, payload_to_ndarray

GRAPH_FORMAT = "dagrad.json.graph.v1"


# ---- parameters ----
def parameter_to_state(p: Parameter) -> Dict[str, Any]:
    """
    Snapshot a parameter's value, gradient and zeroed flag.
    """
    return {
        "name": p.name,
        "value": ndarray_to_payload(p.get_value()),
        "gradient": ndarray_to_payload(p.get_gradient()),
        "zeroed": bool(p.zeroed),
    }


def parameter_from_state(state: Mapping[str, Any]) -> Parameter:
    """
    Rebuild a parameter from `parameter_to_state` output.
    """
    p = Parameter(payload_to_ndarray(state["value"]), name=str(state["name"]))
    if not state.get("zeroed", True):
        p.update_gradient(payload_to_ndarray(state["gradient"]))
    return p


def collect_parameters(graph: Graph) -> Dict[str, Parameter]:
    """
    Return the parameters referenced by a graph's parameter vertices, by name.

    Raises
    ------
    ValueError
        If two distinct parameters share a name.
    """
    out: Dict[str, Parameter] = {}
    for v in graph.vertices:
        if not isinstance(v, ParameterVertex):
            continue
        p = v.parameter
        seen = out.get(p.name)
        if seen is not None and seen is not p:
            raise ValueError(f"Two distinct parameters are named '{p.name}'")
        out[p.name] = p
    return out


# ---- graphs ----
def describe_graph(graph: Graph) -> Dict[str, Any]:
    """
    Describe a graph's structure as JSON-safe vertex records.

    Records are listed in evaluation order, so each record's predecessors
    refer to earlier positions.
    """
    order = graph.evaluation_order()
    position = {id(v): i for i, v in enumerate(order)}

    records: List[Dict[str, Any]] = []
    for v in order:
        records.append(
            {
                "kind": v.kind.value,
                "name": v.get_name(),
                "predecessors": [position[id(p)] for p in v.predecessors],
                "config": v.get_config(),
            }
        )
    return {"vertices": records}


_Builder = Callable[
    [Tuple[Vertex, ...], Mapping[str, Any], str, Mapping[str, Parameter]], Vertex
]


def _build_parameter(preds, cfg, name, params) -> Vertex:
    key = str(cfg["parameter"])
    if key not in params:
        raise KeyError(f"Missing parameter in snapshot: '{key}'")
    return ParameterVertex(params[key], name=name)


def _build_affine(preds, cfg, name, params) -> Vertex:
    return AffineVertex(*preds, name=name)


def _build_loss(preds, cfg, name, params) -> Vertex:
    return CrossEntropyLoss(
        preds[0], cfg["label"], log_epsilon=cfg.get("log_epsilon"), name=name
    )


_BUILDERS: Dict[VertexKind, _Builder] = {
    VertexKind.INPUT: lambda preds, cfg, name, params: InputVertex(
        cfg["data"], name=name
    ),
    VertexKind.PARAMETER: _build_parameter,
    VertexKind.AFFINE: _build_affine,
    VertexKind.RELU: lambda preds, cfg, name, params: ReLUVertex(*preds, name=name),
    VertexKind.SIGMOID: lambda preds, cfg, name, params: SigmoidVertex(
        *preds, name=name
    ),
    VertexKind.TANH: lambda preds, cfg, name, params: TanhVertex(*preds, name=name),
    VertexKind.CROSS_ENTROPY: _build_loss,
}


def build_graph(
    description: Mapping[str, Any],
    parameters: Mapping[str, Parameter],
    *,
    config: Optional[EngineConfig] = None,
) -> Graph:
    """
    Rebuild a graph from `describe_graph` output over existing parameters.

    Parameters
    ----------
    description : Mapping[str, Any]
        Graph description.
    parameters : Mapping[str, Parameter]
        Parameters by name; parameter vertices wrap these objects (not copies).
    config : EngineConfig | None, optional
        Configuration of the new graph.

    Raises
    ------
    ValueError
        If a record has an unknown kind or refers to a later record.
    KeyError
        If a referenced parameter is missing.
    """
    graph = Graph(config=config)
    built: List[Vertex] = []

    for i, rec in enumerate(description["vertices"]):
        try:
            kind = VertexKind(str(rec["kind"]))
        except ValueError:
            raise ValueError(f"Unknown vertex kind {rec['kind']!r}") from None

        pred_ids = [int(x) for x in rec.get("predecessors", [])]
        for j in pred_ids:
            if not 0 <= j < i:
                raise ValueError(
                    f"Vertex record {i} refers to predecessor {j}, which is not "
                    "an earlier record."
                )
        preds = tuple(built[j] for j in pred_ids)

        v = _BUILDERS[kind](preds, rec.get("config", {}) or {}, str(rec["name"]), parameters)
        built.append(v)
        graph.add_vertex(v)

    return graph


# ---- files ----
def save_json(path: str | Path, graph: Graph) -> None:
    """
    Save a graph's structure and the state of its parameters to one JSON file.

    Format
    ------
    {
      "format": "dagrad.json.graph.v1",
      "graph": {"vertices": [...]},
      "parameters": {"<name>": {"value": ..., "gradient": ..., "zeroed": ...}}
    }
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    payload = {
        "format": GRAPH_FORMAT,
        "graph": describe_graph(graph),
        "parameters": {
            name: parameter_to_state(param)
            for name, param in collect_parameters(graph).items()
        },
    }
    p.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


def load_json(
    path: str | Path, *, config: Optional[EngineConfig] = None
) -> Tuple[Graph, Dict[str, Parameter]]:
    """
    Load a snapshot written by `save_json`.

    Returns
    -------
    tuple[Graph, dict[str, Parameter]]
        The rebuilt graph and the restored parameters by name.

    Raises
    ------
    ValueError
        If the file's format tag is not recognized.
    """
    payload = json.loads(Path(path).read_text(encoding="utf-8"))

    fmt = payload.get("format")
    if fmt != GRAPH_FORMAT:
        raise ValueError(f"Unsupported snapshot format: {fmt!r}")

    parameters = {
        str(name): parameter_from_state(state)
        for name, state in payload.get("parameters", {}).items()
    }
    return build_graph(payload["graph"], parameters, config=config), parameters
