from __future__ import annotations

from pathlib import Path

from rawdng.errors import DecodeError

from .types import RawFrame, RawFrameInfo


RAW_HEADER_MAGIC = "LIBCAMERA4J RAW"

_FIELDS = {
    "Width": "width",
    "Height": "height",
    "Stride": "stride",
    "Format": "pixel_format",
    "DataSize": "data_size",
}
_INT_FIELDS = {"width", "height", "stride", "data_size"}


def format_raw_header(info: RawFrameInfo | RawFrame) -> str:
    if isinstance(info, RawFrame):
        info = info.info()
    return (
        f"{RAW_HEADER_MAGIC}\n"
        f"Width: {info.width}\n"
        f"Height: {info.height}\n"
        f"Stride: {info.stride}\n"
        f"Format: {info.pixel_format}\n"
        f"DataSize: {info.data_size}\n"
    )


def parse_raw_header(text: str) -> RawFrameInfo:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines or lines[0] != RAW_HEADER_MAGIC:
        raise DecodeError(f"not a raw dump header (expected {RAW_HEADER_MAGIC!r})")

    values: dict[str, object] = {}
    for line in lines[1:]:
        key, sep, value = line.partition(":")
        if not sep:
            raise DecodeError(f"malformed raw header line: {line!r}")
        name = _FIELDS.get(key.strip())
        if name is None:
            continue
        value = value.strip()
        if name in _INT_FIELDS:
            try:
                values[name] = int(value)
            except ValueError as exc:
                raise DecodeError(f"raw header field {key.strip()} is not an integer: {value!r}") from exc
        else:
            values[name] = value

    missing = [key for key, name in _FIELDS.items() if name not in values]
    if missing:
        raise DecodeError(f"raw header missing fields: {', '.join(missing)}")

    info = RawFrameInfo(**values)  # type: ignore[arg-type]
    if info.width <= 0 or info.height <= 0 or info.stride <= 0 or info.data_size < 0:
        raise DecodeError(f"raw header has invalid geometry: {info}")
    return info


def _split_prepended(blob: bytes) -> tuple[str, bytes]:
    marker = blob.find(b"\nDataSize:")
    if marker < 0:
        raise DecodeError("raw dump header is not terminated by a DataSize line")
    end = blob.find(b"\n", marker + 1)
    if end < 0:
        raise DecodeError("raw dump header is truncated")
    try:
        header = blob[: end + 1].decode("ascii")
    except UnicodeDecodeError as exc:
        raise DecodeError("raw dump header is not ASCII") from exc
    return header, blob[end + 1 :]


def default_header_path(path: Path) -> Path:
    return path.with_suffix(".txt")


def read_raw_dump(path: Path, header_path: Path | None = None) -> RawFrame:
    """Load a packed frame saved with a text header.

    The header is either prepended to the data or stored in a sidecar file
    (``header_path``, or ``<name>.txt`` beside the dump).
    """

    blob = path.read_bytes()
    if blob.startswith(RAW_HEADER_MAGIC.encode("ascii")):
        header_text, payload = _split_prepended(blob)
    else:
        sidecar = header_path or default_header_path(path)
        if not sidecar.exists():
            raise DecodeError(f"no raw header in {path} and no sidecar at {sidecar}")
        header_text = sidecar.read_text(encoding="ascii")
        payload = blob

    info = parse_raw_header(header_text)
    if len(payload) < info.data_size:
        raise DecodeError(f"raw dump {path} holds {len(payload)} bytes, header declares {info.data_size}")

    return RawFrame(
        data=bytes(payload[: info.data_size]),
        width=info.width,
        height=info.height,
        stride=info.stride,
        pixel_format=info.pixel_format,
    )
