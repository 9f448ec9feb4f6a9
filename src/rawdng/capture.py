from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from pathlib import Path

from rawdng.config import CameraConfig, CaptureConfig
from rawdng.decode import (
    RawFrame,
    bit_depth_from_format,
    is_raw_bayer_format,
    resolve_bayer_order,
    unpack_packed,
)
from rawdng.errors import ValidationError
from rawdng.write import CameraMetadata, DngDocument, write_dng_file


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureMetadata:
    """ISP results reported alongside the most recent completed frame."""

    colour_gains: tuple[float, float] | None = None
    sensor_black_levels: tuple[int, ...] | None = None
    colour_correction_matrix: tuple[float, ...] | None = None
    timestamp: datetime | None = None


def as_shot_neutral_from_gains(colour_gains: tuple[float, float]) -> tuple[float, float, float]:
    """Neutral in camera RGB from the (red, blue) white balance gains."""
    red = colour_gains[0] if colour_gains[0] > 0 else 1.0
    blue = colour_gains[1] if colour_gains[1] > 0 else 1.0
    return (1.0 / red, 1.0, 1.0 / blue)


def build_document(frame: RawFrame, bit_depth: int | None = None) -> DngDocument:
    if not is_raw_bayer_format(frame.pixel_format):
        raise ValidationError(
            f"not a raw Bayer format: {frame.pixel_format} ({frame.width}x{frame.height})"
        )

    depth = bit_depth or bit_depth_from_format(frame.pixel_format)
    order = resolve_bayer_order(frame.pixel_format)
    samples = unpack_packed(frame.data, frame.width, frame.height, frame.effective_stride(), depth)
    logger.debug("unpacked %sx%s %s as %s-bit %s", frame.width, frame.height, frame.pixel_format, depth, order.name)

    return DngDocument(
        width=frame.width,
        height=frame.height,
        bit_depth=depth,
        bayer_order=order,
        samples=samples,
    )


def build_metadata(capture: CaptureMetadata, camera: CameraConfig | None = None) -> CameraMetadata:
    """Merge per-frame ISP values over the configured camera defaults.

    The white balance neutral comes from the frame's colour gains when they
    were reported, then from ``camera.as_shot_neutral``, then unity.
    """

    camera = camera or CameraConfig()
    matrix = capture.colour_correction_matrix or tuple(v for row in camera.color_matrix for v in row)
    black = capture.sensor_black_levels or camera.black_level
    if capture.colour_gains is not None:
        neutral = as_shot_neutral_from_gains(capture.colour_gains)
    else:
        neutral = camera.as_shot_neutral or (1.0, 1.0, 1.0)

    kwargs = {}
    if capture.timestamp is not None:
        kwargs["capture_time"] = capture.timestamp.replace(microsecond=0)

    return CameraMetadata(
        make=camera.make,
        model=camera.model,
        software=camera.software,
        color_matrix=tuple(float(v) for v in matrix),
        as_shot_neutral=tuple(float(v) for v in neutral),
        black_level=tuple(int(v) for v in black),
        white_level=camera.white_level,
        **kwargs,
    )


def capture_metadata_from_config(capture: CaptureConfig) -> CaptureMetadata:
    return CaptureMetadata(colour_gains=capture.colour_gains)


def frame_to_dng(
    frame: RawFrame,
    capture: CaptureMetadata,
    path: Path,
    camera: CameraConfig | None = None,
    bit_depth: int | None = None,
) -> Path:
    document = build_document(frame, bit_depth=bit_depth)
    metadata = build_metadata(capture, camera)
    return write_dng_file(path, document, metadata)
