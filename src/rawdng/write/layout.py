from __future__ import annotations

from dataclasses import dataclass
import logging
import struct
from typing import Iterable

from rawdng.errors import EncodeError

from .tags import PendingStripOffset, Tag, TagEntry, TagType, encode_tag


logger = logging.getLogger(__name__)

TIFF_HEADER_SIZE = 8
IFD_ENTRY_SIZE = 12
MAX_FILE_SIZE = 0xFFFFFFFF


def directory_size(entry_count: int) -> int:
    """Entry count field, the 12-byte records and the next-IFD pointer."""
    return 2 + entry_count * IFD_ENTRY_SIZE + 4


def align(offset: int, boundary: int) -> int:
    return (offset + boundary - 1) // boundary * boundary


@dataclass(frozen=True)
class PlacedEntry:
    entry: TagEntry
    offset: int | None = None

    def value_field(self) -> bytes:
        """The 4-byte value-or-offset slot of the IFD record."""
        if self.entry.is_external:
            return struct.pack("<I", self.offset)
        return self.entry.inline  # type: ignore[return-value]


@dataclass(frozen=True)
class FinalizedLayout:
    entries: tuple[PlacedEntry, ...]
    external_start: int
    strip_offset: int
    strip_byte_count: int

    @property
    def ifd_offset(self) -> int:
        return TIFF_HEADER_SIZE

    @property
    def total_size(self) -> int:
        return self.strip_offset + self.strip_byte_count

    def find(self, tag: int) -> PlacedEntry | None:
        for placed in self.entries:
            if placed.entry.tag == tag:
                return placed
        return None


def _strip_byte_count(entries: Iterable[TagEntry | PendingStripOffset]) -> int:
    for entry in entries:
        if isinstance(entry, TagEntry) and entry.tag == Tag.STRIP_BYTE_COUNTS:
            if entry.type != TagType.LONG or entry.count != 1 or entry.inline is None:
                raise EncodeError("StripByteCounts must be a single inline LONG")
            return struct.unpack("<I", entry.inline)[0]
    raise EncodeError("layout requires a StripByteCounts entry")


def plan_layout(entries: Iterable[TagEntry | PendingStripOffset]) -> FinalizedLayout:
    """Assign every directory, data and strip offset before anything is written.

    The input must contain exactly one ``PendingStripOffset`` and one
    StripByteCounts entry. Entries are sorted by tag number, external values
    are placed after the directory on their type's alignment and the pixel
    strip starts on the next 4-byte boundary.
    """

    items = list(entries)
    pending = [e for e in items if isinstance(e, PendingStripOffset)]
    if len(pending) != 1:
        raise EncodeError(f"layout requires exactly one pending strip offset, got {len(pending)}")
    strip_byte_count = _strip_byte_count(items)

    provisional_start = TIFF_HEADER_SIZE + directory_size(len(items))
    logger.debug("provisional external data start %s for %s entries", provisional_start, len(items))

    ordered = sorted(items, key=lambda e: e.tag)
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.tag == cur.tag:
            raise EncodeError(f"duplicate tag {cur.tag} in directory")

    # Offsets derive from the sorted list, never from the provisional estimate.
    external_start = TIFF_HEADER_SIZE + directory_size(len(ordered))
    cursor = external_start
    offsets: dict[int, int] = {}
    for entry in ordered:
        if isinstance(entry, TagEntry) and entry.is_external:
            cursor = align(cursor, entry.type.alignment)
            offsets[entry.tag] = cursor
            cursor += len(entry.data)  # type: ignore[arg-type]

    strip_offset = align(cursor, 4)
    if strip_offset + strip_byte_count > MAX_FILE_SIZE:
        raise EncodeError(f"DNG of {strip_offset + strip_byte_count} bytes exceeds 32-bit TIFF offsets")

    placed = []
    for entry in ordered:
        if isinstance(entry, PendingStripOffset):
            placed.append(PlacedEntry(encode_tag(entry.tag, TagType.LONG, strip_offset)))
        else:
            placed.append(PlacedEntry(entry, offsets.get(entry.tag)))

    logger.debug(
        "planned %s entries, external data at %s, strip at %s (%s bytes)",
        len(placed),
        external_start,
        strip_offset,
        strip_byte_count,
    )
    return FinalizedLayout(
        entries=tuple(placed),
        external_start=external_start,
        strip_offset=strip_offset,
        strip_byte_count=strip_byte_count,
    )
