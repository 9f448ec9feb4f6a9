from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import numpy as np

from rawdng.decode.bayer import BayerOrder
from rawdng.errors import ValidationError


SUPPORTED_BIT_DEPTHS = (10, 12)

IDENTITY_MATRIX = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True, eq=False)
class DngDocument:
    width: int
    height: int
    bit_depth: int
    bayer_order: BayerOrder
    samples: np.ndarray

    @property
    def strip_byte_count(self) -> int:
        return self.width * self.height * 2


@dataclass(frozen=True)
class CameraMetadata:
    make: str = "Raspberry Pi"
    model: str = "Camera"
    software: str = "rawdng"
    color_matrix: tuple[float, ...] = IDENTITY_MATRIX
    as_shot_neutral: tuple[float, ...] = (1.0, 1.0, 1.0)
    black_level: tuple[int, ...] = (0, 0, 0, 0)
    white_level: int | None = None
    # Fixed when the metadata is built so repeated encodes are byte identical.
    capture_time: datetime = field(default_factory=lambda: datetime.now().replace(microsecond=0))

    @property
    def unique_camera_model(self) -> str:
        return f"{self.make} {self.model}"

    def resolved_white_level(self, bit_depth: int) -> int:
        if self.white_level is None:
            return (1 << bit_depth) - 1
        return int(self.white_level)


def as_u16_samples(samples: np.ndarray) -> np.ndarray:
    """Flatten ``samples`` to ``uint16``, rejecting values that would wrap."""

    samples = np.asarray(samples)
    if samples.dtype == np.uint16:
        return samples.reshape(-1)
    if samples.dtype.kind not in "iu":
        raise ValidationError(f"samples must be integers, got dtype {samples.dtype}")
    if samples.size and (samples.min() < 0 or samples.max() > 0xFFFF):
        raise ValidationError("samples must fit in unsigned 16 bits")
    return samples.reshape(-1).astype(np.uint16)


def validate_document(document: DngDocument) -> np.ndarray:
    """Check a document and return its samples as a flat ``uint16`` array."""

    if not isinstance(document.width, (int, np.integer)) or document.width <= 0:
        raise ValidationError(f"width must be a positive integer, got {document.width!r}")
    if not isinstance(document.height, (int, np.integer)) or document.height <= 0:
        raise ValidationError(f"height must be a positive integer, got {document.height!r}")
    if document.bit_depth not in SUPPORTED_BIT_DEPTHS:
        raise ValidationError(f"unsupported bit depth {document.bit_depth}, expected one of {SUPPORTED_BIT_DEPTHS}")
    if not isinstance(document.bayer_order, BayerOrder):
        raise ValidationError(f"bayer_order must be a BayerOrder, got {document.bayer_order!r}")

    samples = np.asarray(document.samples)
    expected = document.width * document.height
    if samples.size != expected:
        raise ValidationError(
            f"sample count {samples.size} does not match {document.width}x{document.height} = {expected}"
        )
    return as_u16_samples(samples)


def validate_metadata(metadata: CameraMetadata, bit_depth: int) -> None:
    if not metadata.make:
        raise ValidationError("camera make must not be empty")
    if not metadata.model:
        raise ValidationError("camera model must not be empty")
    if len(metadata.color_matrix) != 9:
        raise ValidationError(f"color_matrix needs 9 values, got {len(metadata.color_matrix)}")
    if len(metadata.as_shot_neutral) != 3:
        raise ValidationError(f"as_shot_neutral needs 3 values, got {len(metadata.as_shot_neutral)}")
    if len(metadata.black_level) != 4:
        raise ValidationError(f"black_level needs 4 values, got {len(metadata.black_level)}")
    if metadata.resolved_white_level(bit_depth) <= 0:
        raise ValidationError(f"white_level must be positive, got {metadata.white_level}")
