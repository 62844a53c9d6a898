"""Value types shared by the image normalisation modules."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, ClassVar, Protocol

from pydantic import BaseModel, ConfigDict, Field

from imgnorm.config.settings import get_settings
from imgnorm.imgproc.formats import sniff_format


class OrientationCode(IntEnum):
    """EXIF orientation values (tag 0x0112)."""

    NORMAL = 1
    MIRROR_HORIZONTAL = 2
    ROTATE_180 = 3
    MIRROR_VERTICAL = 4
    TRANSPOSE = 5
    ROTATE_90_CW = 6
    TRANSVERSE = 7
    ROTATE_90_CCW = 8

    @property
    def swaps_dimensions(self) -> bool:
        return self >= OrientationCode.TRANSPOSE


class ImageFormat(str, Enum):
    """Output container formats supported by the encoder."""

    JPEG = "jpeg"
    PNG = "png"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def is_lossy(self) -> bool:
        return self is ImageFormat.JPEG


@dataclass(frozen=True, slots=True)
class Dimensions:
    """Pixel size of a decoded image."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Dimensions must be positive, got {self.width}x{self.height}")

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def swapped(self) -> Dimensions:
        return Dimensions(self.height, self.width)

    def scaled(self, factor: float) -> Dimensions:
        """Return dimensions multiplied by ``factor``, floored and never below 1px."""

        return Dimensions(
            max(1, math.floor(self.width * factor)),
            max(1, math.floor(self.height * factor)),
        )

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class PixelBuffer(Protocol):
    """Anything the rasterizer hands back; a Pillow ``Image`` qualifies."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...


@dataclass(slots=True)
class RasterHandle:
    """Decoded pixels together with the encoded buffer they came from."""

    pixels: Any
    dimensions: Dimensions
    source: bytes | None = None


@dataclass(frozen=True, slots=True)
class EncodeAttemptResult:
    """One encoder output.

    ``quality`` is ``None`` when the source bytes were returned untouched.
    """

    data: bytes
    quality: float | None
    dimensions: Dimensions

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def reencoded(self) -> bool:
        return self.quality is not None


class CompressionTarget(BaseModel):
    """Byte budget and encoder hints for a single normalisation call.

    ``max_dimension`` caps the longest side; larger images are scaled down
    before the byte budget is applied.
    """

    model_config = ConfigDict(frozen=True)

    PRESETS: ClassVar[dict[str, dict[str, Any]]] = {
        "HIGH": {"max_bytes": 2 * 1024 * 1024, "initial_quality": 0.8, "max_dimension": 2048},
        "MEDIUM": {"max_bytes": 1024 * 1024, "initial_quality": 0.7, "max_dimension": 1920},
        "LOW": {"max_bytes": 512 * 1024, "initial_quality": 0.6, "max_dimension": 1280},
        "FIT_PORTRAIT": {"max_bytes": int(0.8 * 1024 * 1024), "initial_quality": 0.75, "max_dimension": 1600},
    }

    max_bytes: int = Field(gt=0)
    format_hint: ImageFormat = ImageFormat.JPEG
    initial_quality: float = Field(default=0.9, gt=0.0, le=1.0)
    max_dimension: int | None = Field(default=None, gt=0)

    @classmethod
    def from_preset(cls, name: str, format_hint: ImageFormat = ImageFormat.JPEG) -> CompressionTarget:
        """Build a target from one of the named presets (case-insensitive)."""

        try:
            preset = cls.PRESETS[name.upper()]
        except KeyError as exc:
            raise ValueError(f"Unknown compression preset: {name}") from exc
        return cls(format_hint=format_hint, **preset)

    @classmethod
    def from_settings(cls, kind: str = "fit", format_hint: ImageFormat = ImageFormat.JPEG) -> CompressionTarget:
        """Budget configured for fit photos (``IMGNORM_FIT_MAX_BYTES``) or general uploads."""

        settings = get_settings()
        limits = {"fit": settings.fit_max_bytes, "upload": settings.upload_max_bytes}
        try:
            max_bytes = limits[kind]
        except KeyError as exc:
            raise ValueError(f"Unknown upload kind: {kind}") from exc
        return cls(max_bytes=max_bytes, format_hint=format_hint)

    @classmethod
    def for_source(
        cls,
        data: bytes,
        max_bytes: int,
        initial_quality: float = 0.9,
        max_dimension: int | None = None,
    ) -> CompressionTarget:
        """Keep PNG sources as PNG (alpha survives) and send everything else to JPEG."""

        fmt = ImageFormat.PNG if sniff_format(data) == "png" else ImageFormat.JPEG
        return cls(
            max_bytes=max_bytes,
            format_hint=fmt,
            initial_quality=initial_quality,
            max_dimension=max_dimension,
        )
