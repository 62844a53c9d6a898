"""Shared fixtures: settings isolation, synthetic JPEG/EXIF builders and a fake rasterizer."""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass, field
from io import BytesIO
from typing import Callable

import pytest
from PIL import Image

from imgnorm.config.settings import get_settings
from imgnorm.imgproc.transform import AffineTransform
from imgnorm.imgproc.types import Dimensions, ImageFormat


@pytest.fixture(autouse=True)
def _reset_settings() -> None:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def build_tiff(orientation: int, *, endian: str = "<", value_type: int = 3) -> bytes:
    """TIFF block with a single-entry IFD0 holding the orientation tag."""

    order = b"II" if endian == "<" else b"MM"
    return (
        order
        + struct.pack(endian + "HI", 42, 8)
        + struct.pack(endian + "H", 1)
        + struct.pack(endian + "HHI", 0x0112, value_type, 1)
        + struct.pack(endian + "HH", orientation, 0)
        + struct.pack(endian + "I", 0)
    )


def build_segment(marker: int, payload: bytes) -> bytes:
    return bytes([0xFF, marker]) + struct.pack(">H", len(payload) + 2) + payload


def build_exif_jpeg(orientation: int, *, endian: str = "<", value_type: int = 3, prefix: bytes = b"") -> bytes:
    """Marker-only JPEG (no image data) carrying an Exif APP1 segment."""

    app1 = build_segment(0xE1, b"Exif\x00\x00" + build_tiff(orientation, endian=endian, value_type=value_type))
    return b"\xff\xd8" + prefix + app1 + b"\xff\xd9"


def make_jpeg(
    width: int,
    height: int,
    *,
    orientation: int | None = None,
    color: tuple[int, int, int] = (255, 255, 255),
    marker: tuple[int, int, int] | None = None,
    marker_size: int = 10,
    quality: int = 95,
) -> bytes:
    """Real decodable JPEG, optionally tagged with an EXIF orientation."""

    image = Image.new("RGB", (width, height), color)
    if marker is not None:
        image.paste(marker, (0, 0, marker_size, marker_size))
    buffer = BytesIO()
    kwargs: dict[str, object] = {"quality": quality}
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        kwargs["exif"] = exif.tobytes()
    image.save(buffer, format="JPEG", **kwargs)
    return buffer.getvalue()


@pytest.fixture
def jpeg_factory() -> Callable[..., bytes]:
    return make_jpeg


@pytest.fixture
def exif_jpeg_factory() -> Callable[..., bytes]:
    return build_exif_jpeg


@dataclass(slots=True)
class FakePixels:
    width: int
    height: int


@dataclass
class FakeRasterizer:
    """In-memory rasterizer whose encoded size is a function of quality and dimensions."""

    size_for: Callable[[float, Dimensions], int]
    source_dimensions: Dimensions = Dimensions(800, 600)
    delay: float = 0.0
    fail_stage: str | None = None
    calls: list[tuple[str, object]] = field(default_factory=list)

    def decode(self, data: bytes) -> FakePixels:
        self._enter("decode", len(data))
        return FakePixels(self.source_dimensions.width, self.source_dimensions.height)

    def draw(self, pixels: FakePixels, transform: AffineTransform) -> FakePixels:
        self._enter("draw", transform)
        return FakePixels(transform.dimensions.width, transform.dimensions.height)

    def encode(self, pixels: FakePixels, fmt: ImageFormat, quality: float) -> bytes:
        self._enter("encode", quality)
        return b"\x00" * self.size_for(quality, Dimensions(pixels.width, pixels.height))

    def count(self, stage: str) -> int:
        return sum(1 for name, _ in self.calls if name == stage)

    def _enter(self, stage: str, detail: object) -> None:
        self.calls.append((stage, detail))
        if self.delay:
            time.sleep(self.delay)
        if self.fail_stage == stage:
            raise OSError(f"{stage} exploded")


@pytest.fixture
def fake_rasterizer_factory() -> Callable[..., FakeRasterizer]:
    return FakeRasterizer
