"""Binary and text serialization of vectors.

Binary layout::

    b"FV " | b"DV "       width tag, space terminated
    b"\\x04"               byte size of the count that follows
    <int32 little-endian> element count
    <count * itemsize>    raw little-endian elements

Text layout is `` [ e0 e1 ... en ]\\n``.  Both readers accept the tag of the
other width and convert through a scratch vector of that width.
"""

from __future__ import annotations

import io
import logging
import math
import re
import struct
import sys
from array import array
from typing import IO

from .dtypes import FLOAT32, FLOAT64, ElementType, as_element_type
from .errors import PreconditionError, VectorParseError
from .vector import OwningVector, ResizeType, VectorView

__all__ = ["write_vector", "read_vector", "read_into_owning", "read_into_view"]

logger = logging.getLogger(__name__)

_COUNT = struct.Struct("<i")
_COUNT_SIZE = 4
_MAX_DIM = 2**31 - 1
_READ_CHUNK = 1 << 20
_NUMBER = re.compile(r"-?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][-+]?[0-9]+)?", re.ASCII)
_SPECIAL = {"inf": math.inf, "infinity": math.inf, "nan": math.nan}


def _shorten(text: str) -> str:
    return text if len(text) <= 20 else text[:17] + "..."


def _tell(stream: IO) -> int | None:
    try:
        return stream.tell()
    except (AttributeError, OSError, ValueError):
        return None


def _is_text(stream: IO) -> bool:
    return isinstance(stream, io.TextIOBase)


# ---------------------------------------------------------------- writing


def _format(value: float, dtype: ElementType) -> str:
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if dtype is FLOAT64:
        text = repr(value)
        return text[:-2] if text.endswith(".0") else text
    # Fewest digits that read back to the same single-precision value.
    for digits in range(6, 10):
        text = "%.*g" % (digits, value)
        if FLOAT32.round(float(text)) == value:
            return text
    return "%.9g" % value


def _packed_bytes(vector: VectorView) -> bytes:
    if vector.dim == 0:
        return b""
    end = vector.offset + (vector.dim - 1) * vector.stride + 1
    values = vector.data[vector.offset : end : vector.stride]  # type: ignore[index]
    if sys.byteorder == "big":
        values.byteswap()
    return values.tobytes()


def write_vector(stream: IO, vector: VectorView, binary: bool) -> None:
    """Write ``vector`` to ``stream``.

    Binary output needs a bytes stream; text output goes to either kind.
    """

    if binary:
        if _is_text(stream):
            raise TypeError("binary vector output needs a bytes stream")
        if vector.dim > _MAX_DIM:
            raise PreconditionError(f"vector of dimension {vector.dim} does not fit a 32-bit count")
        stream.write(
            vector.dtype.token.encode("ascii")
            + b" "
            + bytes((_COUNT_SIZE,))
            + _COUNT.pack(vector.dim)
            + _packed_bytes(vector)
        )
        return
    parts = [" [ "]
    for value in vector:
        parts.append(_format(value, vector.dtype))
        parts.append(" ")
    parts.append("]\n")
    text = "".join(parts)
    stream.write(text if _is_text(stream) else text.encode("ascii"))


# ---------------------------------------------------------------- reading


class _CharReader:
    """One-character lookahead over a ``str`` or ``bytes`` stream.

    Buffered byte streams are peeked without consuming anything.  Other
    streams read the lookahead character and can only give it back by
    seeking, so a lookahead that is not needed is skipped on streams that
    cannot report their position.
    """

    def __init__(self, stream: IO) -> None:
        self._stream = stream
        self._peekable = callable(getattr(stream, "peek", None))
        self._pending: str | None = None
        self._mark: int | None = None
        self.start = _tell(stream)
        self.consumed = 0

    @property
    def current(self) -> int | None:
        if self.start is None:
            return None
        return self.start + self.consumed

    def peek(self) -> str:
        """Next character, ``""`` at end of stream."""

        if self._pending is None:
            if self._peekable:
                chunk = self._stream.peek(1)[:1]
            else:
                chunk = self._stream.read(1)
            if isinstance(chunk, bytes):
                chunk = chunk.decode("latin-1")
            self._pending = chunk
        return self._pending

    def get(self) -> str:
        char = self.peek()
        if char and self._peekable:
            self._stream.read(1)
        self._pending = None
        self._mark = None
        if char:
            self.consumed += 1
        return char

    def mark(self) -> bool:
        """Remember where the next lookahead starts.

        Returns ``False`` when a character read now could not be given back.
        """

        if self._peekable:
            return True
        if self._pending is not None:
            # Already read; only the mark taken before it can return it.
            return self._mark is not None
        self._mark = _tell(self._stream)
        return self._mark is not None

    def release(self) -> None:
        """Give an unconsumed lookahead character back to the stream."""

        if self._pending and not self._peekable and self._mark is not None:
            self._stream.seek(self._mark)
        self._pending = None

    def token(self) -> str:
        """Skip whitespace, then read up to the next whitespace (left pending)."""

        while self.peek() and self.peek().isspace():
            self.get()
        chars = []
        while True:
            self.mark()
            char = self.peek()
            if not char or char.isspace():
                return "".join(chars)
            chars.append(self.get())


def _fail(reader: "_CharReader | _ByteReader", message: str, *, expected=None, found=None) -> VectorParseError:
    return VectorParseError(
        message, expected=expected, found=found, position=reader.start, current=reader.current
    )


def _read_text_values(reader: _CharReader) -> list[float]:
    opening = reader.token()
    if not opening:
        raise _fail(reader, "EOF while trying to read vector.", expected="[", found="EOF")
    if opening == "[]":
        _consume_newline(reader)
        return []
    if opening != "[":
        raise _fail(reader, "Expected \"[\".", expected="[", found=_shorten(opening))
    values: list[float] = []
    while True:
        char = reader.peek()
        if char == "-" or char.isdigit():
            text = _read_word(reader)
            if _NUMBER.fullmatch(text):
                value = float(text)
            elif text[:1] == "-" and text[1:].lower() in _SPECIAL:
                value = -_SPECIAL[text[1:].lower()]
            elif _NUMBER.match(text):
                raise _fail(
                    reader, "Expected whitespace after number.", expected="whitespace", found=_shorten(text)
                )
            else:
                raise _fail(reader, "Failed to read number.", expected="number", found=_shorten(text))
            if not math.isfinite(value):
                logger.warning("Reading %s value into vector.", "NaN" if math.isnan(value) else "infinite")
            values.append(value)
        elif char == "]":
            reader.get()
            _consume_newline(reader)
            return values
        elif char == "":
            raise _fail(reader, "EOF while reading vector data.", expected="]", found="EOF")
        elif char in "\r\n":
            raise _fail(
                reader, "Newline found while reading vector (maybe it's a matrix?)", expected="]", found=repr(char)
            )
        elif char.isspace():
            reader.get()
        else:
            text = _read_word(reader)
            value = _SPECIAL.get(text.lower())
            if value is None:
                raise _fail(
                    reader, "Expecting numeric vector data.", expected="number", found=_shorten(text)
                )
            logger.warning("Reading %s value into vector.", "NaN" if math.isnan(value) else "infinite")
            values.append(value)


def _read_word(reader: _CharReader) -> str:
    chars = []
    while True:
        char = reader.peek()
        if not char or char.isspace() or char == "]":
            return "".join(chars)
        chars.append(reader.get())


def _consume_newline(reader: _CharReader) -> None:
    # A lookahead that could not be given back is not taken.
    if not reader.mark():
        return
    char = reader.peek()
    if char == "\r":
        reader.get()
        if reader.get() != "\n":
            logger.warning("After end of vector data, read error.")
    elif char == "\n":
        reader.get()
    reader.release()


class _ByteReader:
    def __init__(self, stream: IO) -> None:
        if _is_text(stream):
            raise TypeError("binary vector input needs a bytes stream")
        self._stream = stream
        self.start = _tell(stream)
        self.consumed = 0

    @property
    def current(self) -> int | None:
        if self.start is None:
            return None
        return self.start + self.consumed

    def read(self, size: int) -> bytes:
        chunk = self._stream.read(size)
        self.consumed += len(chunk)
        return chunk


def _read_binary_token(reader: _ByteReader) -> str:
    char = reader.read(1)
    while char and char.isspace():
        char = reader.read(1)
    chars = []
    while char and not char.isspace():
        chars.append(char)
        char = reader.read(1)
    token = b"".join(chars).decode("latin-1")
    if not token:
        raise _fail(reader, "EOF while reading token.", expected="token", found="EOF")
    if char != b" ":
        raise _fail(
            reader,
            "Expected space after token.",
            expected="' '",
            found="EOF" if not char else repr(char.decode("latin-1")),
        )
    return token


def _read_binary(vector: OwningVector, reader: _ByteReader) -> None:
    token = _read_binary_token(reader)
    dtype = vector.dtype
    if token == dtype.other.token:
        with OwningVector(0, dtype.other) as other:
            _read_binary_body(other, reader)
            if other.dim != vector.dim:
                vector.resize(other.dim)
            vector.copy_from_vec(other)
        return
    if token != dtype.token:
        raise _fail(reader, f"Expected token {dtype.token}.", expected=dtype.token, found=_shorten(token))
    _read_binary_body(vector, reader)


def _read_payload(reader: _ByteReader, nbytes: int) -> bytes:
    # The count comes from the stream, so nothing is allocated ahead of the data.
    chunks = []
    remaining = nbytes
    while remaining:
        chunk = reader.read(min(remaining, _READ_CHUNK))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_binary_body(vector: OwningVector, reader: _ByteReader) -> None:
    size_byte = reader.read(1)
    if not size_byte:
        raise _fail(reader, "EOF while reading element count.", expected="count", found="EOF")
    if size_byte[0] != _COUNT_SIZE:
        raise _fail(
            reader,
            "Did not get expected integer type.",
            expected=str(_COUNT_SIZE),
            found=str(size_byte[0]),
        )
    raw = reader.read(_COUNT_SIZE)
    if len(raw) != _COUNT_SIZE:
        raise _fail(reader, "EOF while reading element count.", expected="4 bytes", found=f"{len(raw)} bytes")
    (size,) = _COUNT.unpack(raw)
    if size < 0:
        raise _fail(reader, "Negative element count.", expected="count >= 0", found=str(size))
    nbytes = size * vector.dtype.itemsize
    payload = _read_payload(reader, nbytes)
    if len(payload) != nbytes:
        raise _fail(
            reader,
            f"Error reading vector data (binary mode); truncated stream? (size = {size})",
            expected=f"{nbytes} bytes",
            found=f"{len(payload)} bytes",
        )
    if size != vector.dim:
        vector.resize(size, ResizeType.UNDEFINED)
    if size:
        values = array(vector.dtype.typecode)
        values.frombytes(payload)
        if sys.byteorder == "big":
            values.byteswap()
        vector.data[:size] = values  # type: ignore[index]


def _read_fresh(vector: OwningVector, stream: IO, binary: bool) -> None:
    if binary:
        _read_binary(vector, _ByteReader(stream))
        return
    reader = _CharReader(stream)
    values = _read_text_values(reader)
    vector.resize(len(values))
    for i, value in enumerate(values):
        vector[i] = value


def read_into_owning(vector: OwningVector, stream: IO, binary: bool, add: bool = False) -> None:
    """Replace ``vector`` with the stored vector, or add it in when ``add``.

    In accumulate mode an empty ``vector`` adopts the stored dimension; any
    other mismatch is a :class:`~spiralvec.errors.VectorParseError`.
    """

    if not add:
        _read_fresh(vector, stream, binary)
        return
    start = _tell(stream)
    with OwningVector(0, vector.dtype) as scratch:
        _read_fresh(scratch, stream, binary)
        if vector.dim == 0:
            vector.resize(scratch.dim)
        if vector.dim != scratch.dim:
            raise VectorParseError(
                "Adding but dimensions mismatch.",
                expected=str(vector.dim),
                found=str(scratch.dim),
                position=start,
                current=_tell(stream),
            )
        vector.add_vec(1.0, scratch)


def read_into_view(view: VectorView, stream: IO, binary: bool, add: bool = False) -> None:
    """Read into a fixed-size vector; the stored dimension must equal ``view.dim``."""

    start = _tell(stream)
    with OwningVector(0, view.dtype) as scratch:
        _read_fresh(scratch, stream, binary)
        if scratch.dim != view.dim:
            raise VectorParseError(
                "Size mismatch.",
                expected=str(view.dim),
                found=str(scratch.dim),
                position=start,
                current=_tell(stream),
            )
        if add:
            view.add_vec(1.0, scratch)
        else:
            view.copy_from_vec(scratch)


def read_vector(stream: IO, binary: bool, dtype: ElementType | str | None = FLOAT32) -> OwningVector:
    """Read one vector from ``stream`` into a new :class:`OwningVector` of ``dtype``."""

    vector = OwningVector(0, as_element_type(dtype))
    _read_fresh(vector, stream, binary)
    return vector
