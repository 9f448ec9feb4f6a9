from __future__ import annotations

import io
import logging
import os
from pathlib import Path
import struct
import tempfile
from typing import BinaryIO

import numpy as np

from rawdng.errors import EncodeError, ValidationError
from rawdng.utils.formatting import dng_datetime

from .layout import FinalizedLayout, TIFF_HEADER_SIZE, directory_size, plan_layout
from .tags import PendingStripOffset, Tag, TagEntry, TagType, encode_tag
from .types import CameraMetadata, DngDocument, as_u16_samples, validate_document, validate_metadata


logger = logging.getLogger(__name__)

TIFF_LITTLE_ENDIAN = b"II"
TIFF_MAGIC = 42
CHUNK_BYTES = 64 * 1024

PHOTOMETRIC_CFA = 32803
ILLUMINANT_D65 = 21
DNG_VERSION = (1, 4, 0, 0)
DNG_BACKWARD_VERSION = (1, 1, 0, 0)


def build_entries(document: DngDocument, metadata: CameraMetadata) -> list[TagEntry | PendingStripOffset]:
    """Unordered directory contents for one raw CFA image."""

    white = metadata.resolved_white_level(document.bit_depth)
    return [
        encode_tag(Tag.NEW_SUBFILE_TYPE, TagType.LONG, 0),
        encode_tag(Tag.IMAGE_WIDTH, TagType.LONG, document.width),
        encode_tag(Tag.IMAGE_LENGTH, TagType.LONG, document.height),
        encode_tag(Tag.BITS_PER_SAMPLE, TagType.SHORT, 16),
        encode_tag(Tag.COMPRESSION, TagType.SHORT, 1),
        encode_tag(Tag.PHOTOMETRIC_INTERPRETATION, TagType.SHORT, PHOTOMETRIC_CFA),
        encode_tag(Tag.ORIENTATION, TagType.SHORT, 1),
        encode_tag(Tag.SAMPLES_PER_PIXEL, TagType.SHORT, 1),
        encode_tag(Tag.ROWS_PER_STRIP, TagType.LONG, document.height),
        encode_tag(Tag.PLANAR_CONFIGURATION, TagType.SHORT, 1),
        encode_tag(Tag.MAKE, TagType.ASCII, metadata.make),
        encode_tag(Tag.MODEL, TagType.ASCII, metadata.model),
        encode_tag(Tag.SOFTWARE, TagType.ASCII, metadata.software),
        encode_tag(Tag.DATE_TIME, TagType.ASCII, dng_datetime(metadata.capture_time)),
        encode_tag(Tag.UNIQUE_CAMERA_MODEL, TagType.ASCII, metadata.unique_camera_model),
        encode_tag(Tag.DNG_VERSION, TagType.BYTE, DNG_VERSION),
        encode_tag(Tag.DNG_BACKWARD_VERSION, TagType.BYTE, DNG_BACKWARD_VERSION),
        encode_tag(Tag.CFA_REPEAT_PATTERN_DIM, TagType.SHORT, (2, 2)),
        encode_tag(Tag.CFA_PATTERN, TagType.BYTE, document.bayer_order.pattern),
        encode_tag(Tag.CFA_PLANE_COLOR, TagType.BYTE, (0, 1, 2)),
        encode_tag(Tag.CFA_LAYOUT, TagType.SHORT, 1),
        encode_tag(Tag.COLOR_MATRIX_1, TagType.SRATIONAL, metadata.color_matrix),
        encode_tag(Tag.AS_SHOT_NEUTRAL, TagType.RATIONAL, metadata.as_shot_neutral),
        encode_tag(Tag.CALIBRATION_ILLUMINANT_1, TagType.SHORT, ILLUMINANT_D65),
        encode_tag(Tag.BLACK_LEVEL, TagType.RATIONAL, [float(v) for v in metadata.black_level]),
        encode_tag(Tag.WHITE_LEVEL, TagType.LONG, white),
        PendingStripOffset(),
        encode_tag(Tag.STRIP_BYTE_COUNTS, TagType.LONG, document.strip_byte_count),
    ]


def plan_dng(document: DngDocument, metadata: CameraMetadata) -> FinalizedLayout:
    validate_document(document)
    validate_metadata(metadata, document.bit_depth)
    return plan_layout(build_entries(document, metadata))


def _write_header(sink: BinaryIO, layout: FinalizedLayout) -> int:
    header = TIFF_LITTLE_ENDIAN + struct.pack("<HI", TIFF_MAGIC, layout.ifd_offset)
    sink.write(header)
    return len(header)


def _write_directory(sink: BinaryIO, layout: FinalizedLayout) -> int:
    buf = bytearray(directory_size(len(layout.entries)))
    struct.pack_into("<H", buf, 0, len(layout.entries))
    pos = 2
    for placed in layout.entries:
        entry = placed.entry
        struct.pack_into("<HHI4s", buf, pos, entry.tag, int(entry.type), entry.count, placed.value_field())
        pos += 12
    struct.pack_into("<I", buf, pos, 0)  # single IFD
    sink.write(buf)
    return len(buf)


def _pad_to(sink: BinaryIO, position: int, target: int) -> int:
    if target < position:
        raise EncodeError(f"layout overlap: at byte {position}, next block planned at {target}")
    if target > position:
        sink.write(b"\x00" * (target - position))
    return target


def _write_strip(sink: BinaryIO, samples: np.ndarray) -> int:
    per_chunk = CHUNK_BYTES // 2
    written = 0
    for start in range(0, samples.size, per_chunk):
        chunk = samples[start : start + per_chunk].astype("<u2", copy=False).tobytes()
        sink.write(chunk)
        written += len(chunk)
    return written


def write_dng(sink: BinaryIO, layout: FinalizedLayout, samples: np.ndarray) -> int:
    """Replay a finalized layout into ``sink``; returns the number of bytes written.

    Sink errors propagate unchanged and leave the sink partially written.
    """

    flat = as_u16_samples(samples)
    if flat.size * 2 != layout.strip_byte_count:
        raise ValidationError(f"{flat.size} samples do not fill a {layout.strip_byte_count}-byte strip")

    position = _write_header(sink, layout)
    position += _write_directory(sink, layout)
    if position != layout.external_start:
        raise EncodeError(f"directory ended at {position}, layout expects {layout.external_start}")

    for placed in layout.entries:
        if placed.entry.is_external:
            position = _pad_to(sink, position, placed.offset)  # type: ignore[arg-type]
            sink.write(placed.entry.data)  # type: ignore[arg-type]
            position += len(placed.entry.data)  # type: ignore[arg-type]

    position = _pad_to(sink, position, layout.strip_offset)
    position += _write_strip(sink, flat)
    return position


def encode_dng(document: DngDocument, metadata: CameraMetadata) -> bytes:
    """Encode ``document`` in memory.

    DateTime is taken from ``metadata.capture_time``, so the same inputs give
    the same bytes.
    """

    samples = validate_document(document)
    validate_metadata(metadata, document.bit_depth)
    layout = plan_layout(build_entries(document, metadata))

    out = io.BytesIO()
    write_dng(out, layout, samples)
    return out.getvalue()


def write_dng_file(path: Path, document: DngDocument, metadata: CameraMetadata) -> Path:
    """Write a DNG next to ``path`` under a temporary name, then rename it into place."""

    samples = validate_document(document)
    validate_metadata(metadata, document.bit_depth)
    layout = plan_layout(build_entries(document, metadata))

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            written = write_dng(f, layout, samples)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info("wrote %s (%sx%s %s, %s bytes)", path, document.width, document.height, document.bayer_order.name, written)
    return path
