from __future__ import annotations

import math
import os
from array import array

import pytest

from spiralvec import (
    FLOAT32,
    FLOAT64,
    BackendUnavailableError,
    available_backends,
    backend_for,
    default_backend_preference,
    select_backend,
    use_backend,
)
from spiralvec import _blas
from spiralvec import backend as backend_module
from spiralvec.backend import PORTABLE


def _packed(rows):
    flat = []
    for i, row in enumerate(rows):
        flat.extend(row[: i + 1])
    return array("d", flat)


def _dense_lower(rows):
    n = len(rows)
    return [[rows[i][j] if j <= i else 0.0 for j in range(n)] for i in range(n)]


LOWER = [[2.0], [1.0, 3.0], [-1.0, 0.5, 4.0]]


def test_portable_is_always_available() -> None:
    assert "portable" in available_backends()
    assert select_backend("portable") == "portable"
    assert select_backend("python") == "portable"
    assert select_backend(" CPU ") == "portable"


def test_select_backend_rejects_unknown_hints() -> None:
    with pytest.raises(ValueError):
        select_backend("cuda")


def test_auto_resolves_to_an_available_backend() -> None:
    assert select_backend("auto") in available_backends()


def test_accelerated_request_without_blas_is_an_error() -> None:
    if _blas.blas_available():
        pytest.skip("a CBLAS library is loaded")
    with pytest.raises(BackendUnavailableError):
        select_backend("blas")
    assert _blas.blas_error() is not None


def test_use_backend_restores_previous_preference() -> None:
    before = default_backend_preference()
    with use_backend("portable") as resolved:
        assert resolved == "portable"
        assert backend_for(FLOAT64) is PORTABLE
    assert default_backend_preference() == before


def test_mixed_widths_always_use_portable_loops() -> None:
    assert backend_for(FLOAT32, FLOAT64) is PORTABLE
    assert backend_for(FLOAT64, FLOAT32, preference="auto") is PORTABLE


def test_invalid_environment_preference_warns(monkeypatch) -> None:
    monkeypatch.setenv("SPIRALVEC_BACKEND", "quantum")
    with pytest.warns(RuntimeWarning):
        assert backend_module._preference_from_env() == "auto"
    monkeypatch.setenv("SPIRALVEC_BACKEND", "Portable")
    assert backend_module._preference_from_env() == "portable"


def test_disable_flag_is_read_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("SPIRALVEC_DISABLE_BLAS", "yes")
    assert _blas._disabled()
    monkeypatch.setenv("SPIRALVEC_DISABLE_BLAS", "0")
    assert not _blas._disabled()


def test_blas_library_hint_is_tried_first(monkeypatch) -> None:
    monkeypatch.setenv("SPIRALVEC_BLAS_LIB", "/opt/a/libblas.so" + os.pathsep + "/opt/b/libblas.so")
    candidates = list(_blas._candidate_paths())
    assert candidates[:2] == ["/opt/a/libblas.so", "/opt/b/libblas.so"]


def test_portable_dot_and_axpy_honour_strides() -> None:
    x = array("d", [1.0, 9.0, 2.0, 9.0, 3.0])
    y = array("d", [4.0, 5.0, 6.0])
    assert PORTABLE.dot(3, x, 0, 2, y, 0, 1) == 32.0
    PORTABLE.axpy(3, 2.0, x, 0, 2, y, 0, 1)
    assert list(y) == [6.0, 9.0, 12.0]
    PORTABLE.scal(2, 0.5, y, 1, 1)
    assert list(y) == [6.0, 4.5, 6.0]


def test_portable_copy_converts_between_widths() -> None:
    source = array("d", [0.1, 0.2])
    target = array("f", [0.0, 0.0, 0.0, 0.0])
    PORTABLE.copy(2, source, 0, 1, target, 1, 2)
    assert target[0] == 0.0
    assert target[1] == FLOAT32.round(0.1)
    assert target[3] == FLOAT32.round(0.2)


def test_portable_gemv_skips_reading_y_when_beta_is_zero() -> None:
    a = array("d", [1.0, 2.0, 3.0, 0.0, 4.0, 5.0, 6.0, 0.0])  # 2x3, row stride 4
    x = array("d", [1.0, 1.0, 1.0])
    y = array("d", [math.nan, math.nan])
    PORTABLE.gemv(False, 2, 3, 1.0, a, 0, 4, x, 0, 1, 0.0, y, 0, 1)
    assert list(y) == [6.0, 15.0]

    xt = array("d", [1.0, 2.0])
    yt = array("d", [1.0, 1.0, 1.0])
    PORTABLE.gemv(True, 2, 3, 1.0, a, 0, 4, xt, 0, 1, 2.0, yt, 0, 1)
    assert list(yt) == [11.0, 14.0, 17.0]


def test_portable_spmv_matches_dense_symmetric_product() -> None:
    ap = _packed(LOWER)
    dense = _dense_lower(LOWER)
    x = array("d", [1.0, -2.0, 0.5])
    y = array("d", [0.0, 0.0, 0.0])
    PORTABLE.spmv(3, 1.0, ap, 0, x, 0, 1, 0.0, y, 0, 1)
    for i in range(3):
        expected = sum(
            (dense[i][j] if j <= i else dense[j][i]) * x[j] for j in range(3)
        )
        assert y[i] == pytest.approx(expected)


def test_portable_tpmv_and_tpsv_are_inverse() -> None:
    ap = _packed(LOWER)
    dense = _dense_lower(LOWER)
    for trans in (False, True):
        x = array("d", [1.0, 2.0, 3.0])
        PORTABLE.tpmv(trans, 3, ap, 0, x, 0, 1)
        for i in range(3):
            row = [dense[j][i] for j in range(3)] if trans else dense[i]
            assert x[i] == pytest.approx(sum(row[j] * (j + 1.0) for j in range(3)))
        PORTABLE.tpsv(trans, 3, ap, 0, x, 0, 1)
        assert list(x) == pytest.approx([1.0, 2.0, 3.0])


@pytest.mark.skipif("accelerated" not in available_backends(), reason="no CBLAS library")
def test_accelerated_primitives_agree_with_portable() -> None:
    accelerated = backend_for(FLOAT64, preference="accelerated")
    ap = _packed(LOWER)
    for impl in (accelerated, PORTABLE):
        assert impl.dot(3, array("d", [1, 2, 3]), 0, 1, array("d", [4, 5, 6]), 0, 1) == pytest.approx(32.0)
    for trans in (False, True):
        x1 = array("d", [1.0, -1.0, 2.0])
        x2 = array("d", x1)
        accelerated.tpmv(trans, 3, ap, 0, x1, 0, 1)
        PORTABLE.tpmv(trans, 3, ap, 0, x2, 0, 1)
        assert list(x1) == pytest.approx(list(x2))
    y1 = array("d", [1.0, 1.0, 1.0])
    y2 = array("d", y1)
    d = array("d", [2.0, 3.0, 4.0])
    v = array("d", [1.0, 2.0, 3.0])
    accelerated.gbmv_diag(3, 1.5, d, 0, 1, v, 0, 1, 0.5, y1, 0, 1)
    PORTABLE.gbmv_diag(3, 1.5, d, 0, 1, v, 0, 1, 0.5, y2, 0, 1)
    assert list(y1) == pytest.approx(list(y2))
