"""Image normalisation helpers."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, NoReturn, TypeVar

from imgnorm.config.settings import Settings, get_settings
from imgnorm.imgproc.encoder import EncoderPolicy, SizeBoundedEncoder
from imgnorm.imgproc.errors import (
    EncoderUnavailableError,
    ImageProcessingError,
    ImageTooLargeError,
    InvalidImageError,
    PipelineError,
    UnsupportedImageError,
)
from imgnorm.imgproc.exif import read_orientation
from imgnorm.imgproc.formats import decode_data_url, format_file_size, payload_size, sniff_format, to_data_url
from imgnorm.imgproc.rasterizer import PillowRasterizer, Rasterizer, RasterizerGateway
from imgnorm.imgproc.transform import AffineTransform, calculate_optimal_dimensions, compute
from imgnorm.imgproc.types import CompressionTarget, Dimensions, ImageFormat, OrientationCode, RasterHandle
from imgnorm.metrics.prometheus_exporter import normalizations_total, output_size_bytes

logger = logging.getLogger(__name__)

T = TypeVar("T")


def check_input(image_bytes: bytes, max_bytes: int) -> None:
    """Reject empty, oversized or unrecognised input before anything is decoded."""

    if not image_bytes:
        raise UnsupportedImageError("Image data is empty.")
    if len(image_bytes) > max_bytes:
        raise ImageTooLargeError(len(image_bytes), max_bytes)
    if sniff_format(image_bytes) is None:
        raise UnsupportedImageError("Data is not a recognised image format.")


class ImageNormalizer:
    """Ensures consistent orientation and keeps uploads under a byte budget."""

    def __init__(
        self,
        rasterizer: Rasterizer | None = None,
        *,
        timeout: float | None = None,
        policy: EncoderPolicy | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._gateway = RasterizerGateway(
            rasterizer or PillowRasterizer(),
            timeout=timeout if timeout is not None else self._settings.raster_timeout,
        )
        self._encoder = SizeBoundedEncoder(self._gateway, policy or EncoderPolicy.from_settings(self._settings))

    async def normalize(
        self,
        image_bytes: bytes,
        target: CompressionTarget | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> bytes:
        """Return upright image bytes that fit ``target`` when one is given.

        Correctly oriented images that already fit are returned as-is without
        decoding, unless the target caps dimensions (checking the cap needs a
        decode). Stage failures are raised as :class:`PipelineError`.
        """

        try:
            check_input(image_bytes, self._settings.max_input_bytes)
        except InvalidImageError as exc:
            self._fail("validate", exc, outcome="rejected")

        orientation = read_orientation(image_bytes)
        within_budget = target is None or len(image_bytes) <= target.max_bytes
        capped = target is not None and target.max_dimension is not None
        if orientation is OrientationCode.NORMAL and within_budget and not capped:
            normalizations_total.labels(outcome="unchanged").inc()
            return image_bytes

        handle = await self._run_stage("decode", self._gateway.decode(image_bytes))
        redrawn: str | None = None
        if orientation is not OrientationCode.NORMAL:
            handle = await self._run_stage("orient", self._orient(handle, orientation))
            redrawn = "orient"
        bounded = self._bounded_dimensions(handle.dimensions, target)
        if bounded is not None:
            handle = await self._run_stage("resize", self._resize(handle, bounded))
            redrawn = "resize"
        if redrawn is not None:
            fmt = target.format_hint if target is not None else self._source_format(image_bytes)
            handle = await self._run_stage(redrawn, self._reencode(handle, fmt, redrawn))

        if target is None:
            result = handle.source or b""
        else:
            attempt = await self._run_stage(
                "compress",
                self._encoder.encode(handle, target, cancel_event=cancel_event),
            )
            result = attempt.data

        normalizations_total.labels(outcome="unchanged" if result is image_bytes else "normalized").inc()
        output_size_bytes.observe(len(result))
        logger.info(
            "Normalised image: orientation=%d, %s -> %s, %s",
            orientation,
            format_file_size(len(image_bytes)),
            format_file_size(len(result)),
            handle.dimensions,
        )
        return result

    async def normalize_data_url(
        self,
        data_url: str,
        target: CompressionTarget | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Data URL variant of :meth:`normalize` for browser-originated payloads."""

        image_bytes, mime_type = decode_data_url(data_url)
        logger.debug("Normalising data URL with a %s payload", format_file_size(payload_size(data_url)))
        result = await self.normalize(image_bytes, target, cancel_event=cancel_event)
        if result is image_bytes and data_url.startswith("data:"):
            return data_url
        sniffed = sniff_format(result)
        return to_data_url(result, f"image/{sniffed}" if sniffed else mime_type or "application/octet-stream")

    async def _orient(self, handle: RasterHandle, orientation: OrientationCode) -> RasterHandle:
        transform, dimensions = compute(orientation, handle.dimensions)
        logger.debug("Applying orientation %d: %s -> %s", orientation, handle.dimensions, dimensions)
        return await self._gateway.draw(handle, transform)

    async def _resize(self, handle: RasterHandle, bounded: Dimensions) -> RasterHandle:
        logger.debug("Capping dimensions: %s -> %s", handle.dimensions, bounded)
        return await self._gateway.draw(handle, AffineTransform.resizing(handle.dimensions, bounded))

    async def _reencode(self, handle: RasterHandle, fmt: ImageFormat, stage: str) -> RasterHandle:
        data = await self._gateway.encode(handle, fmt, self._settings.orientation_quality)
        if not data:
            raise EncoderUnavailableError(stage, f"Encoder produced no {fmt.value} data")
        handle.source = data
        return handle

    @staticmethod
    def _bounded_dimensions(dims: Dimensions, target: CompressionTarget | None) -> Dimensions | None:
        if target is None or target.max_dimension is None:
            return None
        bounded = calculate_optimal_dimensions(dims, target.max_dimension, target.max_dimension)
        return bounded if bounded != dims else None

    @staticmethod
    def _source_format(data: bytes | None) -> ImageFormat:
        return ImageFormat.PNG if data and sniff_format(data) == "png" else ImageFormat.JPEG

    async def _run_stage(self, stage: str, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except ImageProcessingError as exc:
            self._fail(stage, exc)

    @staticmethod
    def _fail(stage: str, exc: ImageProcessingError, *, outcome: str = "failed") -> NoReturn:
        normalizations_total.labels(outcome=outcome).inc()
        logger.warning("Normalisation stage %s failed: %s", stage, exc)
        raise PipelineError(stage, exc) from exc
