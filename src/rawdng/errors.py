from __future__ import annotations


class RawDngError(RuntimeError):
    pass


class ValidationError(RawDngError):
    """Document or metadata is malformed; raised before any bytes are produced."""


class DecodeError(RawDngError):
    """Packed sensor data or a raw dump header could not be decoded."""


class EncodeError(RawDngError):
    """A tag value cannot be represented in the DNG container."""
