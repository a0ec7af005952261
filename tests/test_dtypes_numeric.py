import math
import unittest

import pytest

from spiralvec import FLOAT32, FLOAT64, ElementType, NumericDomainError, as_element_type
from spiralvec import _numeric


class ElementTypeTests(unittest.TestCase):
    def test_widths_and_tokens(self) -> None:
        self.assertEqual(FLOAT32.typecode, "f")
        self.assertEqual(FLOAT32.itemsize, 4)
        self.assertEqual(FLOAT32.token, "FV")
        self.assertEqual(FLOAT64.typecode, "d")
        self.assertEqual(FLOAT64.itemsize, 8)
        self.assertEqual(FLOAT64.token, "DV")
        self.assertIs(FLOAT32.other, FLOAT64)
        self.assertIs(FLOAT64.other, FLOAT32)

    def test_min_log_diff_matches_machine_epsilon(self) -> None:
        self.assertAlmostEqual(FLOAT32.min_log_diff, -15.9424, places=3)
        self.assertAlmostEqual(FLOAT64.min_log_diff, -36.0437, places=3)

    def test_round_to_single_precision(self) -> None:
        rounded = FLOAT32.round(0.1)
        self.assertNotEqual(rounded, 0.1)
        self.assertAlmostEqual(rounded, 0.1, places=7)
        self.assertEqual(FLOAT32.round(rounded), rounded)
        self.assertEqual(FLOAT64.round(0.1), 0.1)
        self.assertTrue(math.isinf(FLOAT32.round(1e39)))

    def test_lookup_helpers(self) -> None:
        self.assertIs(ElementType.from_typecode("d"), FLOAT64)
        self.assertIs(ElementType.from_token("FV"), FLOAT32)
        self.assertIsNone(ElementType.from_token("XV"))
        self.assertIs(as_element_type(None), FLOAT32)
        self.assertIs(as_element_type("float64"), FLOAT64)
        self.assertIs(as_element_type("f"), FLOAT32)
        with self.assertRaises(TypeError):
            ElementType.from_typecode("i")
        with self.assertRaises(TypeError):
            as_element_type("int8")

    def test_allocate_is_zeroed(self) -> None:
        buffer = FLOAT64.allocate(3)
        self.assertEqual(buffer.typecode, "d")
        self.assertEqual(list(buffer), [0.0, 0.0, 0.0])


def test_exp_and_log_follow_ieee_conventions() -> None:
    assert _numeric.exp(1000.0) == math.inf
    assert _numeric.exp(-1000.0) == 0.0
    assert _numeric.log(0.0) == -math.inf
    assert math.isnan(_numeric.log(math.nan))
    with pytest.raises(NumericDomainError):
        _numeric.log(-1.0)


def test_divide_by_zero_is_signed_infinity() -> None:
    assert _numeric.divide(1.0, 0.0) == math.inf
    assert _numeric.divide(-1.0, 0.0) == -math.inf
    assert _numeric.divide(1.0, -0.0) == -math.inf
    assert math.isnan(_numeric.divide(0.0, 0.0))
    assert _numeric.divide(3.0, 2.0) == 1.5


def test_power_rejects_unrepresentable_results() -> None:
    assert _numeric.power(2.0, 3.0, FLOAT64.max) == 8.0
    with pytest.raises(NumericDomainError):
        _numeric.power(-8.0, 1.0 / 3.0, FLOAT64.max)
    with pytest.raises(NumericDomainError):
        _numeric.power(1e200, 3.0, FLOAT64.max)
    with pytest.raises(NumericDomainError):
        _numeric.power(1e20, 3.0, FLOAT32.max)
    assert _numeric.try_power(1e200, 3.0, FLOAT64.max) is None
    assert _numeric.try_power(2.0, 2.0, FLOAT64.max) == 4.0


def test_activations_do_not_overflow() -> None:
    assert _numeric.tanh(1000.0) == 1.0
    assert _numeric.tanh(-1000.0) == -1.0
    assert _numeric.sigmoid(1000.0) == 1.0
    assert _numeric.sigmoid(-1000.0) == 0.0
    assert math.isclose(_numeric.sigmoid(0.0), 0.5)
    assert math.isclose(_numeric.tanh(0.5), math.tanh(0.5), rel_tol=1e-12)
