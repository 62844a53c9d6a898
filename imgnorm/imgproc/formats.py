"""Container sniffing and data URL helpers."""

from __future__ import annotations

import base64
import binascii

_SIGNATURES: tuple[tuple[str, bytes], ...] = (
    ("jpeg", b"\xff\xd8\xff"),
    ("png", b"\x89PNG\r\n\x1a\n"),
    ("gif", b"GIF8"),
    ("bmp", b"BM"),
    ("tiff", b"II*\x00"),
    ("tiff", b"MM\x00*"),
)


def sniff_format(data: bytes) -> str | None:
    """Return the container name from the file's magic bytes, or ``None``."""

    for name, signature in _SIGNATURES:
        if data.startswith(signature):
            return name
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


def to_data_url(data: bytes, mime_type: str) -> str:
    """Wrap raw bytes into a ``data:`` URL for the remote generation API."""

    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def decode_data_url(data_url: str) -> tuple[bytes, str | None]:
    """Return raw bytes and MIME type from a base64 data URL.

    Bare base64 strings are accepted as well; their MIME type is ``None``.
    """

    mime_type: str | None = None
    encoded = data_url
    if data_url.startswith("data:"):
        if "," not in data_url:
            raise ValueError("Data URL has no payload separator.")
        header, encoded = data_url.split(",", 1)
        if not header.endswith(";base64"):
            raise ValueError("Only base64 data URLs are supported.")
        mime_type = header[len("data:") : -len(";base64")] or None
    try:
        return base64.b64decode(encoded, validate=True), mime_type
    except (ValueError, binascii.Error) as exc:
        raise ValueError("Data URL payload is not valid base64.") from exc


def payload_size(data_url: str) -> int:
    """Binary size of a data URL payload, ignoring base64 overhead."""

    encoded = data_url.split(",", 1)[1] if data_url.startswith("data:") else data_url
    encoded = encoded.strip()
    padding = len(encoded) - len(encoded.rstrip("="))
    return len(encoded) * 3 // 4 - padding


def format_file_size(size: int) -> str:
    """Human-readable size, e.g. ``1.5 MB``."""

    if size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if index == 0:
        return f"{size} Bytes"
    return f"{value:.1f} {units[index]}"
