from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
import math
import struct
from typing import Sequence, Union

from rawdng.errors import EncodeError


INLINE_CAPACITY = 4
RATIONAL_DENOMINATOR = 10000


class TagType(IntEnum):
    BYTE = 1
    ASCII = 2
    SHORT = 3
    LONG = 4
    RATIONAL = 5
    SRATIONAL = 10

    @property
    def size(self) -> int:
        return _TYPE_SIZES[self]

    @property
    def alignment(self) -> int:
        return _TYPE_ALIGNMENT[self]


_TYPE_SIZES = {
    TagType.BYTE: 1,
    TagType.ASCII: 1,
    TagType.SHORT: 2,
    TagType.LONG: 4,
    TagType.RATIONAL: 8,
    TagType.SRATIONAL: 8,
}

# Boundary an out-of-line value must start on.
_TYPE_ALIGNMENT = {
    TagType.BYTE: 1,
    TagType.ASCII: 1,
    TagType.SHORT: 2,
    TagType.LONG: 4,
    TagType.RATIONAL: 4,
    TagType.SRATIONAL: 4,
}

_INT_FORMATS = {
    TagType.BYTE: ("B", 0, 0xFF),
    TagType.SHORT: ("H", 0, 0xFFFF),
    TagType.LONG: ("I", 0, 0xFFFFFFFF),
}


class Tag(IntEnum):
    NEW_SUBFILE_TYPE = 254
    IMAGE_WIDTH = 256
    IMAGE_LENGTH = 257
    BITS_PER_SAMPLE = 258
    COMPRESSION = 259
    PHOTOMETRIC_INTERPRETATION = 262
    MAKE = 271
    MODEL = 272
    STRIP_OFFSETS = 273
    ORIENTATION = 274
    SAMPLES_PER_PIXEL = 277
    ROWS_PER_STRIP = 278
    STRIP_BYTE_COUNTS = 279
    PLANAR_CONFIGURATION = 284
    SOFTWARE = 305
    DATE_TIME = 306
    CFA_REPEAT_PATTERN_DIM = 33421
    CFA_PATTERN = 33422
    DNG_VERSION = 50706
    DNG_BACKWARD_VERSION = 50707
    UNIQUE_CAMERA_MODEL = 50708
    CFA_PLANE_COLOR = 50710
    CFA_LAYOUT = 50711
    BLACK_LEVEL = 50714
    WHITE_LEVEL = 50717
    COLOR_MATRIX_1 = 50721
    AS_SHOT_NEUTRAL = 50728
    CALIBRATION_ILLUMINANT_1 = 50778


TagValues = Union[str, bytes, int, float, Sequence[int], Sequence[float]]


@dataclass(frozen=True)
class TagEntry:
    """One IFD record.

    Exactly one of ``inline`` (the 4-byte value slot, zero padded) and
    ``data`` (bytes stored outside the directory) is set.
    """

    tag: int
    type: TagType
    count: int
    inline: bytes | None = None
    data: bytes | None = None

    @property
    def is_external(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class PendingStripOffset:
    """StripOffsets entry whose value is only known once the layout is planned."""

    tag: int = int(Tag.STRIP_OFFSETS)


def to_rational(value: float, signed: bool = False) -> tuple[int, int]:
    """Fixed-point rational with a 10000 denominator (4 decimal digits)."""

    v = float(value)
    if not math.isfinite(v):
        raise EncodeError(f"cannot encode non-finite value {value!r} as a rational")

    numerator = math.floor(v * RATIONAL_DENOMINATOR + 0.5)
    if signed:
        if not -0x80000000 <= numerator <= 0x7FFFFFFF:
            raise EncodeError(f"value {value!r} out of range for SRATIONAL")
    elif not 0 <= numerator <= 0xFFFFFFFF:
        raise EncodeError(f"value {value!r} out of range for RATIONAL")
    return numerator, RATIONAL_DENOMINATOR


def _as_sequence(values: TagValues) -> list:
    if isinstance(values, (str, bytes, bytearray)):
        return list(values)
    if not hasattr(values, "__iter__"):
        return [values]
    return list(values)


def _encode_ascii(values: TagValues) -> bytes:
    if not isinstance(values, str):
        raise EncodeError(f"ASCII tag expects a string, got {type(values).__name__}")
    if "\x00" in values:
        raise EncodeError(f"ASCII value contains an embedded NUL: {values!r}")
    try:
        return values.encode("ascii") + b"\x00"
    except UnicodeEncodeError as exc:
        raise EncodeError(f"ASCII value is not plain ASCII: {values!r}") from exc


def _encode_ints(tag_type: TagType, values: list) -> bytes:
    fmt, low, high = _INT_FORMATS[tag_type]
    out = []
    for v in values:
        if isinstance(v, float) and not v.is_integer():
            raise EncodeError(f"{tag_type.name} value {v!r} is not an integer")
        iv = int(v)
        if not low <= iv <= high:
            raise EncodeError(f"{tag_type.name} value {iv} out of range [{low}, {high}]")
        out.append(iv)
    return struct.pack(f"<{len(out)}{fmt}", *out)


def _encode_rationals(tag_type: TagType, values: list) -> bytes:
    signed = tag_type == TagType.SRATIONAL
    fmt = "<iI" if signed else "<II"
    return b"".join(struct.pack(fmt, *to_rational(v, signed=signed)) for v in values)


def encode_tag(tag: int, tag_type: TagType, values: TagValues) -> TagEntry:
    if not 0 <= int(tag) <= 0xFFFF:
        raise EncodeError(f"tag number {tag} does not fit in 16 bits")
    tag_type = TagType(tag_type)

    if tag_type == TagType.ASCII:
        payload = _encode_ascii(values)
        count = len(payload)
    else:
        seq = _as_sequence(values)
        if not seq:
            raise EncodeError(f"tag {tag} has no values")
        if tag_type in (TagType.RATIONAL, TagType.SRATIONAL):
            payload = _encode_rationals(tag_type, seq)
        else:
            payload = _encode_ints(tag_type, seq)
        count = len(seq)

    if len(payload) <= INLINE_CAPACITY:
        return TagEntry(int(tag), tag_type, count, inline=payload.ljust(INLINE_CAPACITY, b"\x00"))
    return TagEntry(int(tag), tag_type, count, data=payload)
