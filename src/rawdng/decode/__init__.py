from rawdng.errors import DecodeError

from .bayer import BayerOrder, bit_depth_from_format, is_raw_bayer_format, resolve_bayer_order
from .raw_header import format_raw_header, parse_raw_header, read_raw_dump
from .types import RawFrame, RawFrameInfo
from .unpack import unpack_packed, unpack_raw10, unpack_raw12

__all__ = [
    "DecodeError",
    "BayerOrder",
    "bit_depth_from_format",
    "is_raw_bayer_format",
    "resolve_bayer_order",
    "format_raw_header",
    "parse_raw_header",
    "read_raw_dump",
    "RawFrame",
    "RawFrameInfo",
    "unpack_packed",
    "unpack_raw10",
    "unpack_raw12",
]
