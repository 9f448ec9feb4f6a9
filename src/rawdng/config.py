from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class CameraConfig:
    make: str = "Raspberry Pi"
    model: str = "Camera Module"
    software: str = "rawdng"
    color_matrix: tuple[tuple[float, float, float], ...] = (
        (1.0, 0.0, 0.0),
        (0.0, 1.0, 0.0),
        (0.0, 0.0, 1.0),
    )
    as_shot_neutral: tuple[float, float, float] | None = None
    black_level: tuple[int, int, int, int] = (0, 0, 0, 0)
    white_level: int | None = None


@dataclass
class CaptureConfig:
    pixel_format: str | None = None
    bit_depth: int | None = None
    colour_gains: tuple[float, float] | None = None


@dataclass
class AppConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    output_dir: Path | None = None
    log_level: str = "INFO"
    log_file: Path | None = None


def _as_tuple_matrix(raw: list[list[float]]) -> tuple[tuple[float, float, float], ...]:
    if len(raw) != 3 or any(len(row) != 3 for row in raw):
        raise ValueError("camera.color_matrix must be 3x3")
    return tuple(tuple(float(v) for v in row) for row in raw)


def _as_float_tuple(raw: list[float], length: int, key: str) -> tuple[float, ...]:
    if len(raw) != length:
        raise ValueError(f"{key} must have {length} values")
    return tuple(float(v) for v in raw)


def _as_black_level(raw: Any) -> tuple[int, int, int, int]:
    if isinstance(raw, (int, float)):
        raw = [raw] * 4
    if len(raw) != 4:
        raise ValueError("camera.black_level must be one value or 4 values")
    return tuple(int(v) for v in raw)  # type: ignore[return-value]


def _optional_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    return int(value)


def _expand_path(value: str | None, base: Path) -> Path | None:
    if value in (None, ""):
        return None
    path = Path(value)
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def parse_config(raw: dict[str, Any], base: Path) -> AppConfig:
    camera_raw = raw.get("camera", {}) or {}
    capture_raw = raw.get("capture", {}) or {}

    neutral_raw = camera_raw.get("as_shot_neutral")
    camera = CameraConfig(
        make=str(camera_raw.get("make", "Raspberry Pi")),
        model=str(camera_raw.get("model", "Camera Module")),
        software=str(camera_raw.get("software", "rawdng")),
        color_matrix=_as_tuple_matrix(camera_raw.get("color_matrix", [[1, 0, 0], [0, 1, 0], [0, 0, 1]])),
        as_shot_neutral=(
            _as_float_tuple(neutral_raw, 3, "camera.as_shot_neutral")  # type: ignore[arg-type]
            if neutral_raw is not None
            else None
        ),
        black_level=_as_black_level(camera_raw.get("black_level", [0, 0, 0, 0])),
        white_level=_optional_int(camera_raw.get("white_level")),
    )

    bit_depth = _optional_int(capture_raw.get("bit_depth"))
    if bit_depth is not None and bit_depth not in (10, 12):
        raise ValueError("capture.bit_depth must be 10 or 12")
    gains_raw = capture_raw.get("colour_gains")
    capture = CaptureConfig(
        pixel_format=capture_raw.get("pixel_format") or None,
        bit_depth=bit_depth,
        colour_gains=(
            _as_float_tuple(gains_raw, 2, "capture.colour_gains")  # type: ignore[arg-type]
            if gains_raw is not None
            else None
        ),
    )

    return AppConfig(
        camera=camera,
        capture=capture,
        output_dir=_expand_path(raw.get("output_dir"), base),
        log_level=str(raw.get("log_level", "INFO")),
        log_file=_expand_path(raw.get("log_file"), base),
    )


def load_config(path: str | Path) -> AppConfig:
    try:
        import yaml  # type: ignore
    except Exception as exc:
        raise RuntimeError("PyYAML is required for config loading. Install with: pip install PyYAML") from exc

    cfg_path = Path(path).expanduser().resolve()
    with cfg_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    app = parse_config(raw, cfg_path.parent)
    ensure_dirs(app)
    return app


def ensure_dirs(config: AppConfig) -> None:
    if config.output_dir is not None:
        config.output_dir.mkdir(parents=True, exist_ok=True)
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
