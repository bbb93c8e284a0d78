from unittest import TestCase
import unittest

import numpy as np

from src.dagrad.domain._errors import OutputNotComputedError, ShapeMismatchError
from src.dagrad.domain._vertex import IVertex, VertexKind
from src.dagrad.infrastructure._parameter import Parameter
from src.dagrad.infrastructure.vertices import (
    AffineVertex,
    InputVertex,
    ParameterVertex,
    ReLUVertex,
    SigmoidVertex,
    TanhVertex,
    softmax,
)


def _arr(x) -> np.ndarray:
    return np.asarray(x, dtype=np.float32)


class TestInputVertex(TestCase):

    def test_output_is_fixed_at_construction(self):
        v = InputVertex([1.0, 2.0, 3.0])
        self.assertIsInstance(v, IVertex)
        self.assertIs(v.kind, VertexKind.INPUT)
        self.assertEqual(v.get_output_shape(), (1, 3))
        self.assertTrue(np.array_equal(v.get_output(), _arr([[1.0, 2.0, 3.0]])))

    def test_forward_and_backward_are_noops(self):
        v = InputVertex([[1.0, 2.0]])
        v.forward()
        self.assertEqual(tuple(v.backward(_arr([[5.0, 5.0]]))), ())
        self.assertTrue(np.array_equal(v.get_output(), _arr([[1.0, 2.0]])))

    def test_is_not_a_sink(self):
        self.assertFalse(InputVertex([1.0]).is_sink)

    def test_name_is_stable(self):
        v = InputVertex([1.0], name="features")
        self.assertEqual(v.get_name(), "features")
        self.assertEqual(v.get_name(), "features")


class TestParameterVertex(TestCase):

    def test_forward_copies_current_value(self):
        p = Parameter([[1.0, 2.0]], name="b")
        v = ParameterVertex(p)
        self.assertEqual(v.get_name(), "b")
        self.assertEqual(v.get_output_shape(), (1, 2))

        with self.assertRaises(OutputNotComputedError):
            v.get_output()

        v.forward()
        out = v.get_output()
        self.assertTrue(np.array_equal(out, _arr([[1.0, 2.0]])))

        out[0, 0] = 42.0
        self.assertEqual(float(p.get_value()[0, 0]), 1.0)

    def test_backward_deposits_flattened_gradient(self):
        p = Parameter(np.zeros((2, 2)))
        v = ParameterVertex(p)
        v.backward(_arr([[1.0, 2.0], [3.0, 4.0]]))
        self.assertTrue(np.array_equal(p.get_gradient(), _arr([1.0, 2.0, 3.0, 4.0])))

    def test_backward_rejects_wrong_shape(self):
        v = ParameterVertex(Parameter(np.zeros((2, 2))))
        with self.assertRaises(ShapeMismatchError):
            v.backward(_arr([[1.0, 2.0, 3.0, 4.0]]))

    def test_backward_requires_upstream(self):
        v = ParameterVertex(Parameter([[1.0]]))
        with self.assertRaises(ValueError):
            v.backward()

    def test_rejects_non_parameter(self):
        with self.assertRaises(TypeError):
            ParameterVertex(np.zeros((1, 1)))


class TestAffineVertex(TestCase):

    def setUp(self) -> None:
        self.x_np = _arr([[1.0, 2.0], [0.5, -1.0]])
        self.w_np = _arr([[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]])
        self.b_np = _arr([[0.01, 0.02, 0.03]])
        self.x = InputVertex(self.x_np)
        self.w = ParameterVertex(Parameter(self.w_np))
        self.b = ParameterVertex(Parameter(self.b_np))
        self.w.forward()
        self.b.forward()

    def test_forward_matches_numpy(self):
        v = AffineVertex(self.x, self.w, self.b)
        self.assertEqual(v.get_output_shape(), (2, 3))
        v.forward()
        expected = self.x_np @ self.w_np + self.b_np
        self.assertTrue(np.allclose(v.get_output(), expected, atol=1e-6))

    def test_backward_matches_closed_form(self):
        v = AffineVertex(self.x, self.w, self.b)
        v.forward()
        g = _arr([[1.0, 0.0, -1.0], [0.5, 0.5, 0.5]])

        gx, gw, gb = v.backward(g)

        self.assertTrue(np.allclose(gx, g @ self.w_np.T, atol=1e-6))
        self.assertTrue(np.allclose(gw, self.x_np.T @ g, atol=1e-6))
        self.assertTrue(np.allclose(gb, g.sum(axis=0, keepdims=True), atol=1e-6))

    def test_without_bias_returns_two_gradients(self):
        v = AffineVertex(self.x, self.w)
        v.forward()
        grads = v.backward(np.ones((2, 3), dtype=np.float32))
        self.assertEqual(len(grads), 2)
        self.assertEqual(len(v.predecessors), 2)

    def test_rejects_incompatible_weight(self):
        bad_w = ParameterVertex(Parameter(np.zeros((3, 3))))
        with self.assertRaises(ShapeMismatchError):
            AffineVertex(self.x, bad_w)

    def test_rejects_incompatible_bias(self):
        bad_b = ParameterVertex(Parameter(np.zeros((1, 2))))
        with self.assertRaises(ShapeMismatchError):
            AffineVertex(self.x, self.w, bad_b)

    def test_forward_before_predecessors_fails(self):
        w = ParameterVertex(Parameter(self.w_np))
        v = AffineVertex(self.x, w)
        with self.assertRaises(OutputNotComputedError):
            v.forward()


class TestActivations(TestCase):

    def setUp(self) -> None:
        self.x_np = _arr([[-2.0, -0.5, 0.5, 3.0]])
        self.x = InputVertex(self.x_np)
        self.g = _arr([[1.0, 2.0, -1.0, 0.5]])

    def test_relu(self):
        v = ReLUVertex(self.x)
        v.forward()
        self.assertTrue(np.array_equal(v.get_output(), _arr([[0.0, 0.0, 0.5, 3.0]])))
        (gx,) = v.backward(self.g)
        self.assertTrue(np.array_equal(gx, _arr([[0.0, 0.0, -1.0, 0.5]])))

    def test_sigmoid(self):
        v = SigmoidVertex(self.x)
        v.forward()
        s = 1.0 / (1.0 + np.exp(-self.x_np.astype(np.float64)))
        self.assertTrue(np.allclose(v.get_output(), s, atol=1e-6))
        (gx,) = v.backward(self.g)
        self.assertTrue(np.allclose(gx, self.g * s * (1.0 - s), atol=1e-6))

    def test_tanh(self):
        v = TanhVertex(self.x)
        v.forward()
        t = np.tanh(self.x_np.astype(np.float64))
        self.assertTrue(np.allclose(v.get_output(), t, atol=1e-6))
        (gx,) = v.backward(self.g)
        self.assertTrue(np.allclose(gx, self.g * (1.0 - t * t), atol=1e-6))

    def test_activation_keeps_predecessor_shape(self):
        x = InputVertex(np.zeros((3, 2)))
        self.assertEqual(ReLUVertex(x).get_output_shape(), (3, 2))


class TestSoftmax(TestCase):

    def test_rows_sum_to_one(self):
        p = softmax(_arr([[1.0, 2.0, 3.0], [0.0, 0.0, 0.0]]))
        self.assertTrue(np.allclose(p.sum(axis=-1), 1.0, atol=1e-6))
        self.assertTrue(np.allclose(p[1], 1.0 / 3.0, atol=1e-6))

    def test_large_logits_do_not_overflow(self):
        p = softmax(_arr([1000.0, 1001.0]))
        self.assertTrue(np.all(np.isfinite(p)))
        e = np.exp([-1.0, 0.0])
        self.assertTrue(np.allclose(p, e / e.sum(), atol=1e-6))


class TestReceivedGradientAccumulator(TestCase):

    def test_contributions_are_summed_and_reset(self):
        v = InputVertex([[1.0, 2.0]])
        self.assertIsNone(v.received_gradient)

        v.receive_gradient(_arr([[1.0, 1.0]]))
        v.receive_gradient(_arr([[0.5, -2.0]]))
        self.assertTrue(np.array_equal(v.received_gradient, _arr([[1.5, -1.0]])))

        v.reset_received_gradient()
        self.assertIsNone(v.received_gradient)

    def test_wrong_shape_is_rejected(self):
        v = InputVertex([[1.0, 2.0]])
        with self.assertRaises(ShapeMismatchError):
            v.receive_gradient(_arr([[1.0, 2.0, 3.0]]))


if __name__ == "__main__":
    unittest.main()
