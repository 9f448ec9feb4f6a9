from rawdng.errors import EncodeError, ValidationError

from .dng_writer import build_entries, encode_dng, plan_dng, write_dng, write_dng_file
from .layout import FinalizedLayout, PlacedEntry, plan_layout
from .tags import PendingStripOffset, Tag, TagEntry, TagType, encode_tag, to_rational
from .types import CameraMetadata, DngDocument

__all__ = [
    "EncodeError",
    "ValidationError",
    "build_entries",
    "encode_dng",
    "plan_dng",
    "write_dng",
    "write_dng_file",
    "FinalizedLayout",
    "PlacedEntry",
    "plan_layout",
    "PendingStripOffset",
    "Tag",
    "TagEntry",
    "TagType",
    "encode_tag",
    "to_rational",
    "CameraMetadata",
    "DngDocument",
]
