from __future__ import annotations

from dataclasses import dataclass
import logging


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawFrameInfo:
    width: int
    height: int
    stride: int
    pixel_format: str
    data_size: int


@dataclass(frozen=True)
class RawFrame:
    """One packed sensor buffer as handed over by the capture layer."""

    data: bytes
    width: int
    height: int
    stride: int
    pixel_format: str

    def effective_stride(self) -> int:
        # Some drivers report a stride larger than the buffer they actually fill.
        if self.height <= 0:
            return self.stride
        actual = len(self.data) // self.height
        if self.stride > actual:
            logger.warning(
                "declared stride %s exceeds buffer (%s bytes over %s rows), using %s",
                self.stride,
                len(self.data),
                self.height,
                actual,
            )
            return actual
        return self.stride

    def info(self) -> RawFrameInfo:
        return RawFrameInfo(
            width=self.width,
            height=self.height,
            stride=self.stride,
            pixel_format=self.pixel_format,
            data_size=len(self.data),
        )
