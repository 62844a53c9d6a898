"""Orientation-to-affine mapping for EXIF orientation codes."""

from __future__ import annotations

from dataclasses import dataclass

from imgnorm.imgproc.types import Dimensions, OrientationCode


@dataclass(frozen=True, slots=True)
class AffineTransform:
    """Canvas-style 2D affine matrix plus the destination canvas size.

    A source point ``(x, y)`` lands at ``(a*x + c*y + e, b*x + d*y + f)``,
    the same coefficient order as ``CanvasRenderingContext2D.transform``.
    """

    a: float
    b: float
    c: float
    d: float
    e: float
    f: float
    dimensions: Dimensions

    @classmethod
    def identity(cls, dimensions: Dimensions) -> AffineTransform:
        return cls(1, 0, 0, 1, 0, 0, dimensions)

    @classmethod
    def scaling(cls, source: Dimensions, factor: float) -> AffineTransform:
        """Uniform downscale of ``source``; the canvas is floored to whole pixels."""

        return cls.resizing(source, source.scaled(factor))

    @classmethod
    def resizing(cls, source: Dimensions, target: Dimensions) -> AffineTransform:
        return cls(
            target.width / source.width,
            0,
            0,
            target.height / source.height,
            0,
            0,
            target,
        )

    @property
    def linear_part(self) -> tuple[float, float, float, float]:
        return (self.a, self.b, self.c, self.d)

    @property
    def is_identity(self) -> bool:
        return self.linear_part == (1, 0, 0, 1) and self.e == 0 and self.f == 0

    def apply(self, x: float, y: float) -> tuple[float, float]:
        return (
            self.a * x + self.c * y + self.e,
            self.b * x + self.d * y + self.f,
        )

    def inverse(self) -> tuple[float, float, float, float, float, float]:
        """Coefficients mapping destination points back to the source."""

        det = self.a * self.d - self.b * self.c
        if det == 0:
            raise ValueError("Affine transform is not invertible.")
        a = self.d / det
        b = -self.b / det
        c = -self.c / det
        d = self.a / det
        e = -(a * self.e + c * self.f)
        f = -(b * self.e + d * self.f)
        return (a, b, c, d, e, f)


def compute(code: OrientationCode | int, src: Dimensions) -> tuple[AffineTransform, Dimensions]:
    """Return the transform that draws ``src`` upright and the resulting canvas size."""

    try:
        orientation = OrientationCode(code)
    except (TypeError, ValueError):
        orientation = OrientationCode.NORMAL

    dims = src.swapped() if orientation.swaps_dimensions else src
    width, height = dims.width, dims.height

    if orientation is OrientationCode.MIRROR_HORIZONTAL:
        coefficients = (-1, 0, 0, 1, width, 0)
    elif orientation is OrientationCode.ROTATE_180:
        coefficients = (-1, 0, 0, -1, width, height)
    elif orientation is OrientationCode.MIRROR_VERTICAL:
        coefficients = (1, 0, 0, -1, 0, height)
    elif orientation is OrientationCode.TRANSPOSE:
        coefficients = (0, 1, 1, 0, 0, 0)
    elif orientation is OrientationCode.ROTATE_90_CW:
        coefficients = (0, 1, -1, 0, width, 0)
    elif orientation is OrientationCode.TRANSVERSE:
        coefficients = (0, -1, -1, 0, width, height)
    elif orientation is OrientationCode.ROTATE_90_CCW:
        coefficients = (0, -1, 1, 0, 0, height)
    else:
        coefficients = (1, 0, 0, 1, 0, 0)

    return AffineTransform(*coefficients, dims), dims


def calculate_optimal_dimensions(src: Dimensions, max_width: int, max_height: int) -> Dimensions:
    """Largest size within ``max_width`` x ``max_height`` that keeps the aspect ratio.

    Never upscales; sides are rounded to whole pixels.
    """

    ratio = src.aspect_ratio
    width, height = float(src.width), float(src.height)
    if width > max_width:
        width = float(max_width)
        height = width / ratio
    if height > max_height:
        height = float(max_height)
        width = height * ratio
    return Dimensions(max(1, round(width)), max(1, round(height)))
