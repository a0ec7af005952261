from __future__ import annotations

import math
from array import array

import pytest

from spiralvec import (
    FLOAT32,
    FLOAT64,
    DimensionMismatchError,
    NumericDomainError,
    OwningVector,
    PreconditionError,
    VectorIndexError,
    VectorView,
)


def vec(values, dtype=FLOAT64):
    return OwningVector.from_values(values, dtype)


def test_view_over_array_respects_offset_and_stride() -> None:
    buffer = array("d", [float(i) for i in range(10)])
    view = VectorView(buffer, 4, offset=1, stride=2)
    assert view.tolist() == [1.0, 3.0, 5.0, 7.0]
    view.set(-1.0)
    assert list(buffer) == [0.0, -1.0, 2.0, -1.0, 4.0, -1.0, 6.0, -1.0, 8.0, 9.0]
    assert len(VectorView(buffer, stride=3)) == 4


def test_view_rejects_invalid_geometry() -> None:
    buffer = array("f", [0.0] * 4)
    with pytest.raises(PreconditionError):
        VectorView(buffer, 3, stride=2)
    with pytest.raises(PreconditionError):
        VectorView(buffer, 1, stride=0)
    with pytest.raises(TypeError):
        VectorView([1.0, 2.0])  # type: ignore[arg-type]


def test_element_access_is_range_checked() -> None:
    v = vec([1.0, 2.0, 3.0])
    v[1] = 5.0
    assert v[1] == 5.0
    with pytest.raises(VectorIndexError):
        v[3]
    with pytest.raises(VectorIndexError):
        v[-1] = 0.0


def test_range_is_a_view_onto_the_same_storage() -> None:
    v = vec([1.0, 2.0, 3.0, 4.0, 5.0])
    middle = v.range(1, 3)
    middle.scale(10.0)
    assert v.tolist() == [1.0, 20.0, 30.0, 40.0, 5.0]
    with pytest.raises(VectorIndexError):
        v.range(3, 3)


def test_copy_from_vec_then_exact_equality(backend) -> None:
    v = vec([1.5, -2.25, 3.0, 1e-3])
    w = OwningVector(4, FLOAT64)
    w.copy_from_vec(v)
    assert w.approx_equal(v, 0.0)
    with pytest.raises(DimensionMismatchError):
        w.copy_from_vec(vec([1.0]))


def test_cross_precision_copy_rounds_to_single() -> None:
    source = vec([0.1, 1.0 / 3.0])
    target = OwningVector(2, FLOAT32)
    target.copy_from_vec(source)
    assert target[0] == FLOAT32.round(0.1)
    assert target[1] == FLOAT32.round(1.0 / 3.0)
    assert target[0] != 0.1

    back = OwningVector(2, FLOAT64)
    back.copy_from_vec(target)
    assert back.tolist() == target.tolist()


def test_set_zero_and_add_scalar(backend) -> None:
    v = vec([1.0, 2.0, 3.0])
    v.add(0.5)
    assert v.tolist() == [1.5, 2.5, 3.5]
    v.scale(2.0)
    assert v.tolist() == [3.0, 5.0, 7.0]
    v.set_zero()
    assert v.tolist() == [0.0, 0.0, 0.0]


def test_mul_and_div_elements_accept_other_width() -> None:
    v = vec([2.0, 3.0, 4.0])
    v.mul_elements(vec([0.5, 2.0, -1.0], FLOAT32))
    assert v.tolist() == [1.0, 6.0, -4.0]
    v.div_elements(vec([2.0, 0.0, 4.0], FLOAT32))
    assert v.tolist() == [0.5, math.inf, -1.0]
    zero = vec([0.0])
    zero.div_elements(vec([0.0]))
    assert math.isnan(zero[0])


def test_invert_elements_follows_ieee() -> None:
    v = vec([2.0, 0.0, -4.0])
    v.invert_elements()
    assert v.tolist() == [0.5, math.inf, -0.25]


def test_apply_log_and_exp() -> None:
    v = vec([1.0, math.e, 0.0])
    v.apply_log()
    assert v[0] == 0.0
    assert v[1] == pytest.approx(1.0)
    assert v[2] == -math.inf
    v.apply_exp()
    assert v.tolist() == pytest.approx([1.0, math.e, 0.0])

    with pytest.raises(NumericDomainError):
        vec([1.0, -1.0]).apply_log()

    big = vec([1000.0])
    big.apply_exp()
    assert big[0] == math.inf


def test_log_of_reads_from_another_vector() -> None:
    source = vec([1.0, math.e ** 2], FLOAT32)
    target = OwningVector(2, FLOAT64)
    target.log_of(source)
    assert target[0] == 0.0
    assert target[1] == pytest.approx(2.0, rel=1e-6)


def test_apply_pow_special_cases() -> None:
    v = vec([4.0, 9.0])
    v.apply_pow(0.5)
    assert v.tolist() == [2.0, 3.0]
    v.apply_pow(2.0)
    assert v.tolist() == [4.0, 9.0]
    v.apply_pow(1.0)
    assert v.tolist() == [4.0, 9.0]
    v.apply_pow(1.5)
    assert v.tolist() == pytest.approx([8.0, 27.0])


def test_apply_pow_domain_errors() -> None:
    with pytest.raises(NumericDomainError):
        vec([-1.0]).apply_pow(0.5)
    with pytest.raises(NumericDomainError):
        vec([-8.0]).apply_pow(1.0 / 3.0)
    with pytest.raises(NumericDomainError):
        vec([1e200]).apply_pow(3.0)
    with pytest.raises(NumericDomainError):
        vec([1e20], FLOAT32).apply_pow(3.0)
    negative = vec([-2.0])
    negative.apply_pow(3.0)
    assert negative[0] == -8.0


def test_apply_pow_abs_keeps_sign_when_asked() -> None:
    v = vec([-2.0, 3.0, 0.0])
    v.apply_pow_abs(2.0, include_sign=True)
    assert v.tolist() == [-4.0, 9.0, 0.0]
    w = vec([-2.0, 4.0, 0.0])
    w.apply_pow_abs(-1.0)
    assert w.tolist() == [0.5, 0.25, 0.0]
    u = vec([-4.0])
    u.apply_pow_abs(0.5, include_sign=True)
    assert u[0] == -2.0


def test_apply_floor_with_vector_counts_and_leaves_rest_untouched() -> None:
    values = [0.1, -3.0, 2.5, 7.0, -0.25]
    floors = [0.0, 0.0, 3.0, 1.0, -0.5]
    v = vec(values, FLOAT32)
    before = v.tolist()
    changed = v.apply_floor(vec(floors, FLOAT32))
    assert changed == 2
    after = v.tolist()
    for i, (old, new) in enumerate(zip(before, after)):
        if old < FLOAT32.round(floors[i]):
            assert new == FLOAT32.round(floors[i])
        else:
            assert new == old


def test_apply_floor_and_ceiling_with_scalars() -> None:
    v = vec([-2.0, 0.5, 3.0, 10.0])
    assert v.apply_floor(0.0) == 1
    assert v.apply_ceiling(3.0) == 1
    assert v.tolist() == [0.0, 0.5, 3.0, 3.0]
    assert v.apply_floor(-1.0) == 0


def test_replace_value_matches_exactly() -> None:
    v = vec([0.1, 0.2, 0.1], FLOAT32)
    v.replace_value(0.1, 5.0)
    assert v.tolist() == [5.0, FLOAT32.round(0.2), 5.0]


def test_activations_from_source() -> None:
    source = vec([-1000.0, 0.0, 1000.0])
    t = OwningVector(3, FLOAT64)
    t.tanh(source)
    assert t.tolist() == [-1.0, 0.0, 1.0]
    s = OwningVector(3, FLOAT32)
    s.sigmoid(source)
    assert s.tolist() == [0.0, 0.5, 1.0]
    source.sigmoid(source)
    assert source.tolist() == [0.0, 0.5, 1.0]


def test_random_fills_are_reproducible_with_a_seeded_source() -> None:
    from spiralvec import RandomSource

    a = OwningVector(7, FLOAT64)
    b = OwningVector(7, FLOAT64)
    a.set_randn(RandomSource(3))
    b.set_randn(RandomSource(3))
    assert a.tolist() == b.tolist()
    u = OwningVector(50, FLOAT32)
    u.set_rand_uniform(RandomSource(5))
    assert all(0.0 <= value <= 1.0 for value in u)


def test_randn_has_roughly_unit_variance() -> None:
    from spiralvec import RandomSource

    v = OwningVector(20001, FLOAT64)
    v.set_randn(RandomSource(11))
    mean = v.sum() / v.dim
    var = sum((x - mean) ** 2 for x in v) / v.dim
    assert abs(mean) < 0.05
    assert abs(var - 1.0) < 0.05
