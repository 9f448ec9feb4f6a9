from __future__ import annotations

from datetime import datetime
import io
from pathlib import Path
import struct

import numpy as np
import pytest

from rawdng.decode.bayer import BayerOrder
from rawdng.errors import EncodeError, ValidationError
from rawdng.write import dng_writer
from rawdng.write.dng_writer import CHUNK_BYTES, encode_dng, plan_dng, write_dng, write_dng_file
from rawdng.write.tags import Tag, TagType
from rawdng.write.types import CameraMetadata, DngDocument


_TYPE_SIZES = {1: 1, 2: 1, 3: 2, 4: 4, 5: 8, 10: 8}


def _metadata(**overrides) -> CameraMetadata:
    base = dict(
        make="Raspberry Pi",
        model="Camera",
        software="rawdng",
        capture_time=datetime(2024, 5, 17, 12, 30, 45),
    )
    base.update(overrides)
    return CameraMetadata(**base)


def _document(width: int = 4, height: int = 4, bit_depth: int = 10, order: BayerOrder = BayerOrder.RGGB, samples=None) -> DngDocument:
    if samples is None:
        samples = np.zeros(width * height, dtype=np.uint16)
    return DngDocument(width=width, height=height, bit_depth=bit_depth, bayer_order=order, samples=samples)


def _parse_ifd(data: bytes) -> dict[int, tuple[int, int, bytes]]:
    assert data[:2] == b"II"
    magic, ifd_offset = struct.unpack_from("<HI", data, 2)
    assert magic == 42
    count = struct.unpack_from("<H", data, ifd_offset)[0]
    entries: dict[int, tuple[int, int, bytes]] = {}
    order = []
    for i in range(count):
        tag, typ, n, field = struct.unpack_from("<HHI4s", data, ifd_offset + 2 + i * 12)
        order.append(tag)
        entries[tag] = (typ, n, field)
    next_ifd = struct.unpack_from("<I", data, ifd_offset + 2 + count * 12)[0]
    assert next_ifd == 0
    assert order == sorted(order)
    assert len(set(order)) == len(order)
    return entries


def _value_bytes(data: bytes, entry: tuple[int, int, bytes]) -> bytes:
    typ, n, field = entry
    length = n * _TYPE_SIZES[typ]
    if length <= 4:
        return field[:length]
    offset = struct.unpack("<I", field)[0]
    return data[offset : offset + length]


def _long(entry: tuple[int, int, bytes]) -> int:
    return struct.unpack("<I", entry[2])[0]


def test_four_by_four_scenario_layout() -> None:
    data = encode_dng(_document(), _metadata())
    entries = _parse_ifd(data)

    assert len(entries) == 28
    # header + directory + external data (padded) + 4*4*2 strip
    strip_offset = _long(entries[Tag.STRIP_OFFSETS])
    assert strip_offset == 548
    assert strip_offset % 4 == 0
    assert len(data) == 8 + (2 + 28 * 12 + 4) + (548 - 350) + 32
    assert len(data) == 580
    assert _long(entries[Tag.STRIP_BYTE_COUNTS]) == 32
    assert data[strip_offset:] == bytes(32)

    assert _value_bytes(data, entries[Tag.CFA_PATTERN]) == bytes([0, 1, 1, 2])
    assert _value_bytes(data, entries[Tag.CFA_REPEAT_PATTERN_DIM]) == struct.pack("<2H", 2, 2)
    assert _value_bytes(data, entries[Tag.DNG_VERSION]) == bytes([1, 4, 0, 0])
    assert _value_bytes(data, entries[Tag.DNG_BACKWARD_VERSION]) == bytes([1, 1, 0, 0])
    assert _value_bytes(data, entries[Tag.CFA_PLANE_COLOR]) == bytes([0, 1, 2])
    assert _value_bytes(data, entries[Tag.MAKE]) == b"Raspberry Pi\x00"
    assert _value_bytes(data, entries[Tag.UNIQUE_CAMERA_MODEL]) == b"Raspberry Pi Camera\x00"
    assert _value_bytes(data, entries[Tag.DATE_TIME]) == b"2024:05:17 12:30:45\x00"


def test_fixed_tag_values() -> None:
    data = encode_dng(_document(width=6, height=2), _metadata())
    entries = _parse_ifd(data)

    def short(tag: int) -> int:
        assert entries[tag][0] == TagType.SHORT
        return struct.unpack("<H", _value_bytes(data, entries[tag]))[0]

    assert _long(entries[Tag.NEW_SUBFILE_TYPE]) == 0
    assert _long(entries[Tag.IMAGE_WIDTH]) == 6
    assert _long(entries[Tag.IMAGE_LENGTH]) == 2
    assert _long(entries[Tag.ROWS_PER_STRIP]) == 2
    assert short(Tag.BITS_PER_SAMPLE) == 16
    assert short(Tag.COMPRESSION) == 1
    assert short(Tag.PHOTOMETRIC_INTERPRETATION) == 32803
    assert short(Tag.ORIENTATION) == 1
    assert short(Tag.SAMPLES_PER_PIXEL) == 1
    assert short(Tag.PLANAR_CONFIGURATION) == 1
    assert short(Tag.CFA_LAYOUT) == 1
    assert short(Tag.CALIBRATION_ILLUMINANT_1) == 21


def test_external_offsets_match_written_data_and_are_aligned() -> None:
    document = _document(width=6, height=5, order=BayerOrder.GBRG)
    metadata = _metadata(
        make="Acme",
        model="Sensor X",
        software="odd-length!",
        color_matrix=(0.5, -0.25, 0.1, -0.3, 1.2, 0.0, 0.05, -0.6, 0.9),
        as_shot_neutral=(0.5, 1.0, 0.4),
        black_level=(64, 65, 66, 67),
    )
    data = encode_dng(document, metadata)
    layout = plan_dng(document, metadata)

    for placed in layout.entries:
        entry = placed.entry
        if not entry.is_external:
            continue
        assert data[placed.offset : placed.offset + len(entry.data)] == entry.data
        if entry.type in (TagType.LONG, TagType.RATIONAL, TagType.SRATIONAL):
            assert placed.offset % 4 == 0
        elif entry.type == TagType.SHORT:
            assert placed.offset % 2 == 0

    entries = _parse_ifd(data)
    for tag, (typ, n, field) in entries.items():
        if n * _TYPE_SIZES[typ] > 4:
            assert struct.unpack("<I", field)[0] == layout.find(tag).offset
    assert len(data) == layout.total_size


def test_colour_and_level_tags() -> None:
    metadata = _metadata(
        color_matrix=(1.5, -0.25, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0),
        as_shot_neutral=(0.5, 1.0, 0.25),
        black_level=(64, 64, 64, 64),
    )
    data = encode_dng(_document(), metadata)
    entries = _parse_ifd(data)

    matrix = struct.unpack("<18i", _value_bytes(data, entries[Tag.COLOR_MATRIX_1]))
    assert entries[Tag.COLOR_MATRIX_1][0] == TagType.SRATIONAL
    assert matrix[:4] == (15000, 10000, -2500, 10000)

    neutral = struct.unpack("<6I", _value_bytes(data, entries[Tag.AS_SHOT_NEUTRAL]))
    assert neutral == (5000, 10000, 10000, 10000, 2500, 10000)

    assert entries[Tag.BLACK_LEVEL][0] == TagType.RATIONAL
    black = struct.unpack("<8I", _value_bytes(data, entries[Tag.BLACK_LEVEL]))
    assert black == (640000, 10000) * 4


def test_white_level_defaults_to_bit_depth() -> None:
    data10 = encode_dng(_document(bit_depth=10), _metadata(black_level=(64, 64, 64, 64)))
    assert _long(_parse_ifd(data10)[Tag.WHITE_LEVEL]) == 1023

    data12 = encode_dng(_document(bit_depth=12), _metadata())
    assert _long(_parse_ifd(data12)[Tag.WHITE_LEVEL]) == 4095

    explicit = encode_dng(_document(), _metadata(white_level=900))
    assert _long(_parse_ifd(explicit)[Tag.WHITE_LEVEL]) == 900


def test_encoding_is_byte_identical_for_same_input() -> None:
    samples = np.arange(64, dtype=np.uint16)
    document = _document(width=8, height=8, samples=samples)
    metadata = _metadata()
    assert encode_dng(document, metadata) == encode_dng(document, metadata)


def test_pixel_strip_is_little_endian_row_major() -> None:
    samples = np.arange(12, dtype=np.uint16).reshape(3, 4) * 300
    data = encode_dng(_document(width=4, height=3, samples=samples), _metadata())
    strip_offset = _long(_parse_ifd(data)[Tag.STRIP_OFFSETS])

    assert data[strip_offset:] == samples.reshape(-1).astype("<u2").tobytes()
    assert struct.unpack_from("<H", data, strip_offset + 2)[0] == 300


class _RecordingSink(io.BytesIO):
    def __init__(self) -> None:
        super().__init__()
        self.sizes: list[int] = []

    def write(self, b) -> int:  # type: ignore[override]
        self.sizes.append(len(b))
        return super().write(b)


def test_large_strip_is_written_in_bounded_chunks() -> None:
    width, height = 320, 240
    samples = (np.arange(width * height) % 1024).astype(np.uint16)
    document = _document(width=width, height=height, samples=samples)
    metadata = _metadata()
    layout = plan_dng(document, metadata)

    sink = _RecordingSink()
    written = write_dng(sink, layout, samples)

    assert written == layout.total_size == len(sink.getvalue())
    assert max(sink.sizes) <= CHUNK_BYTES
    assert sink.sizes[-3:] == [CHUNK_BYTES, CHUNK_BYTES, width * height * 2 - 2 * CHUNK_BYTES]
    assert sink.getvalue() == encode_dng(document, metadata)


def test_validation_errors_before_encoding() -> None:
    with pytest.raises(ValidationError):
        encode_dng(_document(samples=np.zeros(15, dtype=np.uint16)), _metadata())
    with pytest.raises(ValidationError):
        encode_dng(_document(bit_depth=8), _metadata())
    with pytest.raises(ValidationError):
        encode_dng(DngDocument(4, 4, 10, "RGGB", np.zeros(16, dtype=np.uint16)), _metadata())  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        encode_dng(_document(width=0, samples=np.zeros(0, dtype=np.uint16)), _metadata())
    with pytest.raises(ValidationError):
        encode_dng(_document(samples=np.full(16, 70000, dtype=np.int32)), _metadata())
    with pytest.raises(ValidationError):
        encode_dng(_document(), _metadata(make=""))
    with pytest.raises(ValidationError):
        encode_dng(_document(), _metadata(color_matrix=(1.0,) * 8))
    with pytest.raises(ValidationError):
        encode_dng(_document(), _metadata(black_level=(0, 0, 0)))


def test_invalid_metadata_values_raise_encode_error() -> None:
    matrix = (1.0, 0.0, 0.0, 0.0, float("nan"), 0.0, 0.0, 0.0, 1.0)
    with pytest.raises(EncodeError):
        encode_dng(_document(), _metadata(color_matrix=matrix))
    with pytest.raises(EncodeError):
        encode_dng(_document(), _metadata(software="bad\x00name"))


def test_accepts_integer_samples_in_range() -> None:
    samples = np.full((4, 4), 1023, dtype=np.int32)
    data = encode_dng(_document(samples=samples), _metadata())
    strip_offset = _long(_parse_ifd(data)[Tag.STRIP_OFFSETS])
    assert data[strip_offset:] == np.full(16, 1023, dtype="<u2").tobytes()


class _FailingSink:
    def __init__(self, fail_after: int) -> None:
        self.calls = 0
        self.fail_after = fail_after

    def write(self, b) -> int:
        self.calls += 1
        if self.calls > self.fail_after:
            raise OSError("disk full")
        return len(b)


def test_sink_errors_propagate_unchanged() -> None:
    document = _document()
    layout = plan_dng(document, _metadata())
    with pytest.raises(OSError, match="disk full"):
        write_dng(_FailingSink(fail_after=2), layout, document.samples)


def test_write_dng_rejects_samples_that_would_wrap() -> None:
    layout = plan_dng(_document(), _metadata())
    sink = io.BytesIO()
    with pytest.raises(ValidationError):
        write_dng(sink, layout, np.full(16, 70000, dtype=np.int32))
    with pytest.raises(ValidationError):
        write_dng(sink, layout, np.full(16, -1, dtype=np.int16))
    with pytest.raises(ValidationError):
        write_dng(sink, layout, np.zeros(16, dtype=np.float32))
    assert sink.getvalue() == b""


def test_encode_dng_requires_explicit_metadata() -> None:
    with pytest.raises(TypeError):
        encode_dng(_document())  # type: ignore[call-arg]


def test_write_dng_file_matches_encoded_bytes(tmp_path: Path) -> None:
    document = _document(width=8, height=2, samples=np.arange(16, dtype=np.uint16))
    metadata = _metadata()
    out = write_dng_file(tmp_path / "nested" / "frame.dng", document, metadata)

    assert out == tmp_path / "nested" / "frame.dng"
    assert out.read_bytes() == encode_dng(document, metadata)
    assert [p.name for p in out.parent.iterdir()] == ["frame.dng"]


def test_write_dng_file_leaves_nothing_on_failure(tmp_path: Path, monkeypatch) -> None:
    def _boom(sink, layout, samples) -> int:
        sink.write(b"II*\x00")
        raise OSError("write failed")

    monkeypatch.setattr(dng_writer, "write_dng", _boom)
    with pytest.raises(OSError):
        write_dng_file(tmp_path / "frame.dng", _document(), _metadata())
    assert list(tmp_path.iterdir()) == []


def test_write_dng_file_validates_before_creating_files(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        write_dng_file(tmp_path / "frame.dng", _document(bit_depth=14), _metadata())
    assert list(tmp_path.iterdir()) == []


def test_output_reads_back_with_tifffile() -> None:
    tifffile = pytest.importorskip("tifffile")

    samples = (np.arange(48) * 20).astype(np.uint16)
    data = encode_dng(_document(width=8, height=6, samples=samples), _metadata())
    strip_offset = _long(_parse_ifd(data)[Tag.STRIP_OFFSETS])

    with tifffile.TiffFile(io.BytesIO(data)) as tif:
        page = tif.pages[0]
        assert page.imagewidth == 8
        assert page.imagelength == 6
        assert page.bitspersample == 16
        assert page.dataoffsets[0] == strip_offset
        assert page.databytecounts[0] == 96
