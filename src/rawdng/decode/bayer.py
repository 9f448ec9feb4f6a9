from __future__ import annotations

from enum import Enum
import logging
import re


logger = logging.getLogger(__name__)

_RAW_FORMAT_RE = re.compile(r"^[BGRA][GBAR][0-9]+")
_DEPTH_RE = re.compile(r"^[A-Za-z]+?(\d+)")


class BayerOrder(Enum):
    """2x2 CFA tiles, colour indices 0=Red, 1=Green, 2=Blue."""

    RGGB = (0, 1, 1, 2)
    GRBG = (1, 0, 2, 1)
    BGGR = (2, 1, 1, 0)
    GBRG = (1, 2, 0, 1)

    @property
    def pattern(self) -> tuple[int, int, int, int]:
        return self.value


def resolve_bayer_order(format_tag: str) -> BayerOrder:
    """Guess the CFA layout from a pixel format tag such as ``BG10`` or ``SRGGB12``.

    This is a heuristic over loosely standardised four character codes, not an
    authoritative lookup. Unrecognised tags fall back to BGGR.
    """

    tag = format_tag or ""
    if tag.startswith("BG") or "BGGR" in tag:
        return BayerOrder.BGGR
    if tag.startswith("GB") or "GBRG" in tag:
        return BayerOrder.GBRG
    if tag.startswith("RG") or "RGGB" in tag:
        return BayerOrder.RGGB
    if tag.startswith("GR") or "GRBG" in tag:
        return BayerOrder.GRBG

    logger.warning("unrecognised pixel format %r, assuming BGGR bayer order", format_tag)
    return BayerOrder.BGGR


def is_raw_bayer_format(format_tag: str) -> bool:
    tag = format_tag or ""
    return bool(_RAW_FORMAT_RE.match(tag)) or tag.startswith("S") or tag.startswith("p")


def bit_depth_from_format(format_tag: str, default: int = 10) -> int:
    match = _DEPTH_RE.search(format_tag or "")
    if match is None:
        return default
    depth = int(match.group(1))
    if depth not in (10, 12):
        return default
    return depth
