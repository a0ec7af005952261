"""Minimal CBLAS loader used by the accelerated vector backend.

The module locates a shared library exposing the CBLAS interface, identifies
the vendor for diagnostics and binds the level-1/level-2 routines the vector
kernels need (``dot``, ``axpy``, ``scal``, ``copy``, ``gemv``, ``spmv``,
``tpmv``, ``tpsv`` and ``gbmv``) for both single and double precision.
Nothing here is mandatory: when no library can be loaded, or a routine is
missing, :func:`blas_available` reports ``False`` and callers fall back to the
portable strided loops in :mod:`spiralvec.backend`.

Library discovery honours ``SPIRALVEC_BLAS_LIB`` (an ``os.pathsep`` separated
list tried first) and ``SPIRALVEC_DISABLE_BLAS`` which skips loading entirely.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os
from threading import Lock
from typing import Callable, Iterable

__all__ = [
    "CBLAS_ROW_MAJOR",
    "CBLAS_NO_TRANS",
    "CBLAS_TRANS",
    "CBLAS_LOWER",
    "CBLAS_NON_UNIT",
    "blas_available",
    "blas_vendor",
    "blas_error",
    "routine",
]

logger = logging.getLogger(__name__)

CBLAS_ROW_MAJOR = 101
CBLAS_NO_TRANS = 111
CBLAS_TRANS = 112
CBLAS_LOWER = 122
CBLAS_NON_UNIT = 131

_LIB: ctypes.CDLL | None = None
_ROUTINES: dict[str, Callable[..., object]] = {}
_ERROR: BaseException | None = None
_LOCK = Lock()
_VENDOR: str | None = None

_INT = ctypes.c_int
_PTR = ctypes.c_void_p

# name -> (argument layout, returns a real).  "R" marks a real scalar whose
# ctypes type depends on the precision prefix.
_SIGNATURES: dict[str, tuple[tuple[object, ...], bool]] = {
    "dot": ((_INT, _PTR, _INT, _PTR, _INT), True),
    "axpy": ((_INT, "R", _PTR, _INT, _PTR, _INT), False),
    "scal": ((_INT, "R", _PTR, _INT), False),
    "copy": ((_INT, _PTR, _INT, _PTR, _INT), False),
    "gemv": ((_INT, _INT, _INT, _INT, "R", _PTR, _INT, _PTR, _INT, "R", _PTR, _INT), False),
    "spmv": ((_INT, _INT, _INT, "R", _PTR, _PTR, _INT, "R", _PTR, _INT), False),
    "tpmv": ((_INT, _INT, _INT, _INT, _INT, _PTR, _PTR, _INT), False),
    "tpsv": ((_INT, _INT, _INT, _INT, _INT, _PTR, _PTR, _INT), False),
    "gbmv": (
        (_INT, _INT, _INT, _INT, _INT, _INT, "R", _PTR, _INT, _PTR, _INT, "R", _PTR, _INT),
        False,
    ),
}

_PREFIXES = {"s": ctypes.c_float, "d": ctypes.c_double}


def _disabled() -> bool:
    value = os.environ.get("SPIRALVEC_DISABLE_BLAS", "").strip().lower()
    return value in {"1", "true", "yes", "on"}


def _candidate_paths() -> Iterable[str]:
    hint = os.environ.get("SPIRALVEC_BLAS_LIB", "").strip()
    if hint:
        for entry in hint.split(os.pathsep):
            entry = entry.strip()
            if entry:
                yield entry
    for name in (
        "spiralvec_blas",  # allow custom builds to be hinted first
        "openblas",
        "cblas",
        "blas",
        "mkl_rt",
        "Accelerate",
        "vecLib",
    ):
        resolved = ctypes.util.find_library(name)
        if resolved:
            yield resolved


def _load_library() -> tuple[ctypes.CDLL | None, BaseException | None]:
    last_error: BaseException | None = None
    for candidate in _candidate_paths():
        try:
            lib = ctypes.CDLL(candidate)
        except OSError as exc:
            logger.debug("spiralvec: could not load BLAS candidate %s: %s", candidate, exc)
            last_error = exc
            continue
        if not hasattr(lib, "cblas_ddot"):
            logger.debug("spiralvec: %s does not export the CBLAS interface", candidate)
            last_error = AttributeError(f"{candidate} does not export cblas_ddot")
            continue
        return lib, None
    return None, last_error


def _decode_bytes(value: bytes | None) -> str | None:
    if not value:
        return None
    try:
        return value.decode("utf-8").strip()
    except UnicodeDecodeError:
        return value.decode("latin1", "ignore").strip()


def _identify_vendor(lib: ctypes.CDLL) -> str:
    # OpenBLAS exposes detailed build configuration strings.
    try:
        get_config = getattr(lib, "openblas_get_config")
        get_config.argtypes = []
        get_config.restype = ctypes.c_char_p
        config = _decode_bytes(get_config())
        if config:
            return f"OpenBLAS ({config})"
    except AttributeError:
        pass

    # BLIS publishes its version through the info helper.
    try:
        get_blis_version = getattr(lib, "bli_info_get_version_str")
        get_blis_version.argtypes = []
        get_blis_version.restype = ctypes.c_char_p
        version = _decode_bytes(get_blis_version())
        if version:
            return f"BLIS ({version})"
    except AttributeError:
        pass

    try:
        get_mkl_version = getattr(lib, "MKL_Get_Version_String")
        get_mkl_version.argtypes = [ctypes.c_char_p, ctypes.c_int]
        get_mkl_version.restype = None
        buffer = ctypes.create_string_buffer(512)
        get_mkl_version(buffer, ctypes.sizeof(buffer))
        version = _decode_bytes(buffer.value)
        if version:
            return f"Intel MKL ({version})"
    except (AttributeError, OSError):
        pass

    libname = getattr(lib, "_name", None)
    if isinstance(libname, str):
        if "Accelerate" in libname:
            return "Apple Accelerate"
        if "vecLib" in libname:
            return "Apple vecLib"
        if "spiralvec" in libname:
            return "spiralvec custom BLAS"
    return "generic BLAS"


def _bind_routines(lib: ctypes.CDLL) -> dict[str, Callable[..., object]]:
    routines: dict[str, Callable[..., object]] = {}
    for prefix, real in _PREFIXES.items():
        for name, (layout, returns_real) in _SIGNATURES.items():
            func = getattr(lib, f"cblas_{prefix}{name}")
            func.argtypes = [real if arg == "R" else arg for arg in layout]
            func.restype = real if returns_real else None
            routines[prefix + name] = func
    return routines


def _initialise() -> None:
    global _LIB, _ERROR, _VENDOR
    with _LOCK:
        if _LIB is not None or _ERROR is not None:
            return
        if _disabled():
            _ERROR = RuntimeError("BLAS disabled through SPIRALVEC_DISABLE_BLAS")
            logger.debug("spiralvec: BLAS loading disabled by environment")
            return
        lib, err = _load_library()
        if lib is None:
            _ERROR = err or RuntimeError("no usable BLAS library located")
            logger.debug("spiralvec: no CBLAS library available, using portable loops")
            return
        try:
            routines = _bind_routines(lib)
        except AttributeError as exc:
            _ERROR = exc
            logger.debug("spiralvec: CBLAS library is missing a routine: %s", exc)
            return
        _ROUTINES.update(routines)
        _VENDOR = _identify_vendor(lib)
        _LIB = lib
        logger.info("spiralvec: using %s for accelerated vector kernels", _VENDOR)


_initialise()


def blas_available() -> bool:
    """Return ``True`` when a CBLAS library has been successfully bound."""

    return _LIB is not None


def blas_vendor() -> str:
    """Return a descriptive string for the detected BLAS implementation."""

    if not blas_available():
        raise RuntimeError("BLAS backend is unavailable")
    return _VENDOR or "generic BLAS"


def blas_error() -> BaseException | None:
    """Return the reason the BLAS library could not be loaded, if any."""

    return _ERROR


def routine(name: str) -> Callable[..., object]:
    """Return the bound routine ``name`` (``"ddot"``, ``"sgemv"``, ...)."""

    try:
        return _ROUTINES[name]
    except KeyError:
        raise RuntimeError(f"BLAS routine {name!r} is unavailable") from None
