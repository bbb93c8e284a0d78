from ._vertex import Vertex
from ._input import InputVertex
from ._parameter_vertex import ParameterVertex
from ._affine import AffineVertex
from ._activations import ReLUVertex, SigmoidVertex, TanhVertex, softmax
from ._loss import CrossEntropyLoss


__all__ = [
    Vertex.__name__,
    InputVertex.__name__,
    ParameterVertex.__name__,
    AffineVertex.__name__,
    ReLUVertex.__name__,
    SigmoidVertex.__name__,
    TanhVertex.__name__,
    CrossEntropyLoss.__name__,
    softmax.__name__,
]
