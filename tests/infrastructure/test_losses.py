from unittest import TestCase
import unittest

import numpy as np

from src.dagrad.domain._errors import (
    InvalidLabelError,
    LossNotComputedError,
    NumericalInstabilityError,
    ShapeMismatchError,
    StaleStateError,
)
from src.dagrad.infrastructure.vertices import CrossEntropyLoss, InputVertex


def _softmax64(z) -> np.ndarray:
    z = np.asarray(z, dtype=np.float64)
    e = np.exp(z - z.max())
    return e / e.sum()


class TestCrossEntropyConstruction(TestCase):

    def test_matching_sizes_succeed(self):
        loss = CrossEntropyLoss(InputVertex([1.0, 2.0, 3.0, 0.5]), [0.0, 0.0, 1.0, 0.0])
        self.assertTrue(loss.is_sink)
        self.assertEqual(loss.get_output_shape(), (1, 1))
        self.assertIsNone(loss.loss)

    def test_size_mismatch_reports_both_sizes(self):
        with self.assertRaises(ShapeMismatchError) as cm:
            CrossEntropyLoss(InputVertex([1.0, 2.0, 3.0, 0.5]), [0.0, 0.0, 1.0, 0.0, 0.0])
        self.assertEqual(cm.exception.expected, 4)
        self.assertEqual(cm.exception.actual, 5)
        self.assertIn("4", str(cm.exception))
        self.assertIn("5", str(cm.exception))

    def test_multi_row_prediction_is_rejected(self):
        with self.assertRaises(ShapeMismatchError):
            CrossEntropyLoss(InputVertex(np.zeros((2, 3))), [0.0, 1.0, 0.0])

    def test_non_positive_epsilon_is_rejected(self):
        with self.assertRaises(ValueError):
            CrossEntropyLoss(InputVertex([1.0, 2.0]), [0.0, 1.0], log_epsilon=0.0)


class TestCrossEntropyOneHot(TestCase):

    def setUp(self) -> None:
        self.logits = [1.0, 2.0, 3.0, 0.5]
        self.label = [0.0, 0.0, 1.0, 0.0]
        self.pred = InputVertex(self.logits)
        self.loss = CrossEntropyLoss(self.pred, self.label)

    def test_forward_loss_is_negative_log_probability(self):
        self.loss.forward()
        p = _softmax64(self.logits)
        self.assertAlmostEqual(self.loss.loss, -np.log(p[2]), places=5)
        self.assertAlmostEqual(float(self.loss.get_output()[0, 0]), -np.log(p[2]), places=5)
        self.assertTrue(np.allclose(self.loss.get_probabilities(), p, atol=1e-6))

    def test_backward_gradient_is_zero_except_at_label(self):
        self.loss.forward()
        (grad_logits,) = self.loss.backward()
        p = _softmax64(self.logits)

        g = self.loss.get_gradient()
        self.assertEqual(g.shape, (1, 4))
        self.assertEqual(float(g[0, 0]), 0.0)
        self.assertEqual(float(g[0, 1]), 0.0)
        self.assertEqual(float(g[0, 3]), 0.0)
        self.assertAlmostEqual(float(g[0, 2]), -1.0 / p[2], places=4)

        expected = p - np.asarray(self.label)
        self.assertTrue(np.allclose(grad_logits, expected.reshape(1, -1), atol=1e-6))

    def test_backward_matches_finite_differences(self):
        self.loss.forward()
        (grad_logits,) = self.loss.backward()

        eps = 1e-6
        z = np.asarray(self.logits, dtype=np.float64)
        numeric = np.zeros_like(z)
        for k in range(z.size):
            zp, zm = z.copy(), z.copy()
            zp[k] += eps
            zm[k] -= eps
            numeric[k] = (-np.log(_softmax64(zp)[2]) + np.log(_softmax64(zm)[2])) / (2 * eps)

        self.assertTrue(np.allclose(grad_logits[0], numeric, atol=1e-5))

    def test_backward_rejects_upstream_gradient(self):
        self.loss.forward()
        with self.assertRaises(ValueError):
            self.loss.backward(np.ones((1, 1), dtype=np.float32))


class TestCrossEntropyStateMachine(TestCase):

    def test_backward_before_forward(self):
        loss = CrossEntropyLoss(InputVertex([1.0, 2.0]), [1.0, 0.0])
        with self.assertRaises(LossNotComputedError):
            loss.backward()
        with self.assertRaises(LossNotComputedError):
            loss.get_probabilities()
        self.assertIsNone(loss.get_gradient())

    def test_second_forward_is_stale(self):
        loss = CrossEntropyLoss(InputVertex([1.0, 2.0]), [1.0, 0.0])
        loss.forward()
        with self.assertRaises(StaleStateError):
            loss.forward()

    def test_second_backward_is_stale(self):
        loss = CrossEntropyLoss(InputVertex([1.0, 2.0]), [1.0, 0.0])
        loss.forward()
        loss.backward()
        with self.assertRaises(StaleStateError):
            loss.backward()


class TestCrossEntropyInvalidLabels(TestCase):

    def _forwarded(self, label):
        loss = CrossEntropyLoss(InputVertex([1.0, 2.0, 3.0, 0.5]), label)
        loss.forward()
        return loss

    def test_all_zero_label(self):
        loss = self._forwarded([0.0, 0.0, 0.0, 0.0])
        self.assertEqual(loss.loss, 0.0)
        with self.assertRaises(InvalidLabelError) as cm:
            loss.backward()
        self.assertIn("one-hot", str(cm.exception))

    def test_two_hot_label(self):
        loss = self._forwarded([1.0, 1.0, 0.0, 0.0])
        p = _softmax64([1.0, 2.0, 3.0, 0.5])
        self.assertAlmostEqual(loss.loss, -np.log(p[0]) - np.log(p[1]), places=5)
        with self.assertRaises(InvalidLabelError):
            loss.backward()

    def test_soft_label_is_summed_but_not_differentiable(self):
        loss = self._forwarded([0.0, 0.5, 0.5, 0.0])
        p = _softmax64([1.0, 2.0, 3.0, 0.5])
        self.assertAlmostEqual(
            loss.loss, -0.5 * np.log(p[1]) - 0.5 * np.log(p[2]), places=5
        )
        with self.assertRaises(InvalidLabelError):
            loss.backward()


class TestCrossEntropyNumericalGuard(TestCase):

    def test_zero_probability_raises(self):
        loss = CrossEntropyLoss(InputVertex([0.0, -1.0e4]), [0.0, 1.0])
        with self.assertRaises(NumericalInstabilityError) as cm:
            loss.forward()
        self.assertEqual(cm.exception.index, 1)
        self.assertEqual(cm.exception.probability, 0.0)

    def test_zero_probability_under_zero_label_is_ignored(self):
        loss = CrossEntropyLoss(InputVertex([0.0, -1.0e4]), [1.0, 0.0])
        loss.forward()
        self.assertAlmostEqual(loss.loss, 0.0, places=5)

    def test_epsilon_clamps_and_warns(self):
        loss = CrossEntropyLoss(InputVertex([0.0, -1.0e4]), [0.0, 1.0], log_epsilon=1e-7)
        with self.assertLogs(level="WARNING"):
            loss.forward()
        self.assertAlmostEqual(loss.loss, -np.log(1e-7), places=3)

        with self.assertLogs(level="WARNING"):
            loss.backward()
        self.assertTrue(np.isfinite(loss.get_gradient()).all())

    def test_clamped_loss_still_hands_p_minus_label_to_prediction(self):
        for logits in ([0.0, -1.0e4], [0.0, -20.0]):
            with self.subTest(logits=logits):
                loss = CrossEntropyLoss(InputVertex(logits), [0.0, 1.0], log_epsilon=1e-7)
                with self.assertLogs(level="WARNING"):
                    loss.forward()
                with self.assertLogs(level="WARNING"):
                    (grad_z,) = loss.backward()

                expected = _softmax64(logits) - np.array([0.0, 1.0])
                self.assertTrue(np.allclose(grad_z, expected.reshape(1, -1), atol=1e-6))
                self.assertAlmostEqual(loss.get_gradient()[0, 1], -1e7, delta=1.0)

    def test_tiny_probability_is_kept_in_double_precision(self):
        # exp(-200) underflows in float32 but not in float64
        loss = CrossEntropyLoss(InputVertex([0.0, -200.0]), [0.0, 1.0])
        loss.forward()
        self.assertAlmostEqual(loss.loss, 200.0, places=3)

        (grad_z,) = loss.backward()
        self.assertTrue(np.allclose(grad_z, [[1.0, -1.0]], atol=1e-6))
        self.assertTrue(np.isfinite(loss.get_gradient()).all())


if __name__ == "__main__":
    unittest.main()
