"""Rasterizer collaborator: protocol, Pillow adapter and timed async gateway."""

from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Any, Callable, Protocol

from PIL import Image, UnidentifiedImageError

from imgnorm.imgproc.errors import ImageProcessingError, RasterizeError, RasterizerTimeoutError
from imgnorm.imgproc.transform import AffineTransform
from imgnorm.imgproc.types import Dimensions, ImageFormat, PixelBuffer, RasterHandle

logger = logging.getLogger(__name__)


class Rasterizer(Protocol):
    """Decodes, draws and encodes pixel buffers. Calls may block."""

    def decode(self, data: bytes) -> PixelBuffer: ...

    def draw(self, pixels: Any, transform: AffineTransform) -> PixelBuffer: ...

    def encode(self, pixels: Any, fmt: ImageFormat, quality: float) -> bytes: ...


_TRANSPOSES: dict[tuple[float, float, float, float], Image.Transpose] = {
    (-1, 0, 0, 1): Image.Transpose.FLIP_LEFT_RIGHT,
    (-1, 0, 0, -1): Image.Transpose.ROTATE_180,
    (1, 0, 0, -1): Image.Transpose.FLIP_TOP_BOTTOM,
    (0, 1, 1, 0): Image.Transpose.TRANSPOSE,
    (0, 1, -1, 0): Image.Transpose.ROTATE_270,
    (0, -1, -1, 0): Image.Transpose.TRANSVERSE,
    (0, -1, 1, 0): Image.Transpose.ROTATE_90,
}


def _fills_canvas(transform: AffineTransform, width: int, height: int) -> bool:
    """True when the transformed source rectangle covers exactly the canvas."""

    corners = [transform.apply(x, y) for x in (0, width) for y in (0, height)]
    xs = [x for x, _ in corners]
    ys = [y for _, y in corners]
    canvas = transform.dimensions
    return min(xs) == 0 and min(ys) == 0 and max(xs) == canvas.width and max(ys) == canvas.height


class PillowRasterizer:
    """CPU rasterizer backed by Pillow."""

    def decode(self, data: bytes) -> Image.Image:
        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                return img.copy()
        except UnidentifiedImageError as exc:
            raise ValueError("Data is not a supported image.") from exc

    def draw(self, pixels: Image.Image, transform: AffineTransform) -> Image.Image:
        size = (transform.dimensions.width, transform.dimensions.height)
        if transform.is_identity and pixels.size == size:
            return pixels.copy()

        method = _TRANSPOSES.get(transform.linear_part)
        if method is not None and _fills_canvas(transform, pixels.width, pixels.height):
            return pixels.transpose(method)

        a, b, c, d, e, f = (transform.a, transform.b, transform.c, transform.d, transform.e, transform.f)
        if b == 0 and c == 0 and e == 0 and f == 0 and a > 0 and d > 0:
            return pixels.resize(size, Image.Resampling.LANCZOS)

        ia, ib, ic, id_, ie, if_ = transform.inverse()
        # Pillow expects the inverse as (x_src = a*x + b*y + c, y_src = d*x + e*y + f).
        return pixels.transform(
            size,
            Image.Transform.AFFINE,
            (ia, ic, ie, ib, id_, if_),
            resample=Image.Resampling.BICUBIC,
        )

    def encode(self, pixels: Image.Image, fmt: ImageFormat, quality: float) -> bytes:
        buffer = BytesIO()
        if fmt is ImageFormat.JPEG:
            flat = _flatten(pixels)
            try:
                flat.save(
                    buffer,
                    format="JPEG",
                    quality=max(1, min(100, round(quality * 100))),
                    optimize=True,
                )
            finally:
                if flat is not pixels:
                    flat.close()
        else:
            pixels.save(buffer, format="PNG", optimize=True)
        return buffer.getvalue()


def _flatten(image: Image.Image) -> Image.Image:
    """JPEG-compatible version of ``image``; a new image whenever conversion was needed."""

    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        return _composite_on_white(image)
    if image.mode not in ("RGB", "L"):
        return image.convert("RGB")
    return image


def _composite_on_white(image: Image.Image) -> Image.Image:
    rgba = image.convert("RGBA")
    alpha = rgba.getchannel("A")
    try:
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(rgba, mask=alpha)
        return background
    finally:
        alpha.close()
        rgba.close()


class RasterizerGateway:
    """Runs blocking rasterizer calls in a worker thread under a deadline.

    Each stage is one awaited call. A deadline miss raises
    :class:`RasterizerTimeoutError`; any adapter exception is wrapped in
    :class:`RasterizeError` with the stage name.
    """

    def __init__(self, rasterizer: Rasterizer, timeout: float | None = None) -> None:
        self._rasterizer = rasterizer
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    async def decode(self, data: bytes) -> RasterHandle:
        pixels = await self._call("decode", self._rasterizer.decode, data)
        return RasterHandle(pixels=pixels, dimensions=self._measure("decode", pixels), source=data)

    async def draw(self, handle: RasterHandle, transform: AffineTransform) -> RasterHandle:
        pixels = await self._call("draw", self._rasterizer.draw, handle.pixels, transform)
        return RasterHandle(pixels=pixels, dimensions=self._measure("draw", pixels))

    async def encode(self, handle: RasterHandle, fmt: ImageFormat, quality: float) -> bytes:
        return await self._call("encode", self._rasterizer.encode, handle.pixels, fmt, quality)

    async def _call(self, stage: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Rasterizer %s exceeded %.1fs deadline", stage, self._timeout or 0.0)
            raise RasterizerTimeoutError(stage, self._timeout or 0.0) from exc
        except ImageProcessingError:
            raise
        except Exception as exc:
            raise RasterizeError(stage, str(exc) or exc.__class__.__name__) from exc

    @staticmethod
    def _measure(stage: str, pixels: Any) -> Dimensions:
        try:
            return Dimensions(int(pixels.width), int(pixels.height))
        except (AttributeError, TypeError, ValueError) as exc:
            raise RasterizeError(stage, "rasterizer returned an empty pixel buffer") from exc
