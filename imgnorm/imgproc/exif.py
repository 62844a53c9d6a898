"""Minimal EXIF reader that extracts only the orientation tag from JPEG bytes.

The reader walks JPEG markers up to the first ``Exif`` APP1 segment, reads the
TIFF header that follows it and scans IFD0 for tag ``0x0112``. Anything
unexpected (non-JPEG input, truncated segments, unknown byte order, a value
outside 1..8) yields :attr:`OrientationCode.NORMAL`; the function never raises.
"""

from __future__ import annotations

import logging
import struct

from imgnorm.imgproc.errors import ExifParseError
from imgnorm.imgproc.types import OrientationCode

logger = logging.getLogger(__name__)

_SOI = b"\xff\xd8"
_MARKER_PREFIX = 0xFF
_APP1 = 0xE1
_SOS = 0xDA
_EOI = 0xD9
# Markers without a length field.
_STANDALONE = frozenset({0x01, *range(0xD0, 0xD8)})

_EXIF_SIGNATURE = b"Exif\x00\x00"
_TIFF_MAGIC = 42
_ORIENTATION_TAG = 0x0112
_TYPE_SHORT = 3
_IFD_ENTRY_SIZE = 12


def read_orientation(data: bytes) -> OrientationCode:
    """Return the EXIF orientation stored in ``data``, defaulting to 1."""

    view = memoryview(data)
    try:
        tiff = _find_exif_tiff(view)
        if tiff is None:
            return OrientationCode.NORMAL
        return _read_ifd0_orientation(tiff)
    except ExifParseError as exc:
        logger.debug("Ignoring malformed EXIF data: %s", exc)
        return OrientationCode.NORMAL


def _unpack(fmt: str, buffer: memoryview, offset: int) -> tuple[int, ...]:
    if offset < 0:
        raise ExifParseError(f"negative offset {offset}")
    try:
        return struct.unpack_from(fmt, buffer, offset)
    except struct.error as exc:
        raise ExifParseError(f"truncated read of {fmt!r} at offset {offset}") from exc


def _find_exif_tiff(view: memoryview) -> memoryview | None:
    """Return the TIFF block of the first Exif APP1 segment, if any."""

    if len(view) < 4 or view[:2] != _SOI:
        return None

    offset = 2
    while offset + 2 <= len(view):
        if view[offset] != _MARKER_PREFIX:
            return None
        marker = view[offset + 1]
        if marker == _MARKER_PREFIX:
            offset += 1
            continue
        if marker in (_SOS, _EOI):
            return None
        if marker in _STANDALONE:
            offset += 2
            continue

        (length,) = _unpack(">H", view, offset + 2)
        if length < 2:
            raise ExifParseError(f"invalid segment length {length} at offset {offset}")
        segment_end = offset + 2 + length
        if segment_end > len(view):
            raise ExifParseError(f"segment at offset {offset} overruns the buffer")

        if marker == _APP1:
            payload = view[offset + 4 : segment_end]
            if payload[: len(_EXIF_SIGNATURE)] == _EXIF_SIGNATURE:
                return payload[len(_EXIF_SIGNATURE) :]
        offset = segment_end
    return None


def _read_ifd0_orientation(tiff: memoryview) -> OrientationCode:
    byte_order = tiff[:2]
    if byte_order == b"II":
        endian = "<"
    elif byte_order == b"MM":
        endian = ">"
    else:
        raise ExifParseError("unknown TIFF byte order")

    magic, ifd_offset = _unpack(endian + "HI", tiff, 2)
    if magic != _TIFF_MAGIC:
        raise ExifParseError(f"bad TIFF magic {magic}")

    (entry_count,) = _unpack(endian + "H", tiff, ifd_offset)
    entry = ifd_offset + 2
    for _ in range(entry_count):
        tag, value_type, _count = _unpack(endian + "HHI", tiff, entry)
        if tag == _ORIENTATION_TAG:
            if value_type != _TYPE_SHORT:
                raise ExifParseError(f"orientation stored with type {value_type}")
            (value,) = _unpack(endian + "H", tiff, entry + 8)
            try:
                return OrientationCode(value)
            except ValueError as exc:
                raise ExifParseError(f"orientation value {value} out of range") from exc
        entry += _IFD_ENTRY_SIZE
    return OrientationCode.NORMAL
