"""Iterative re-encoder that fits an image under a byte budget."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass

from imgnorm.config.settings import Settings, get_settings
from imgnorm.imgproc.errors import (
    EncoderUnavailableError,
    NormalizationCancelledError,
    QualityExhaustedError,
    ScaleFloorExceededError,
)
from imgnorm.imgproc.rasterizer import RasterizerGateway
from imgnorm.imgproc.transform import AffineTransform
from imgnorm.imgproc.types import CompressionTarget, EncodeAttemptResult, ImageFormat, RasterHandle
from imgnorm.metrics.prometheus_exporter import encode_attempts_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EncoderPolicy:
    """Tunables for the quality schedule and downscale fallback."""

    quality_step: float = 0.05
    min_quality: float = 0.1
    max_attempts: int = 15
    safety_margin: float = 0.9
    min_scale: float = 0.5
    resize_quality: float = 0.8
    allow_downscale: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> EncoderPolicy:
        return cls(
            quality_step=settings.quality_step,
            min_quality=settings.min_quality,
            max_attempts=settings.max_attempts,
            safety_margin=settings.safety_margin,
            min_scale=settings.min_scale,
            resize_quality=settings.resize_quality,
            allow_downscale=settings.allow_downscale,
        )


def quality_schedule(
    initial: float,
    *,
    step: float = 0.05,
    floor: float = 0.1,
    max_attempts: int = 15,
) -> list[float]:
    """Descending quality values tried by the encoder.

    Starts at ``initial`` and keeps stepping down while the value stays above
    ``floor``. Values are rounded so repeated subtraction does not drift.
    """

    schedule: list[float] = []
    for index in range(max(1, max_attempts)):
        quality = round(initial - index * step, 4)
        if index > 0 and quality <= floor:
            break
        schedule.append(quality)
    return schedule


class SizeBoundedEncoder:
    """Re-encodes pixels with falling quality, then one downscale, to meet ``max_bytes``."""

    def __init__(self, gateway: RasterizerGateway, policy: EncoderPolicy | None = None) -> None:
        self._gateway = gateway
        self._policy = policy or EncoderPolicy.from_settings(get_settings())

    async def encode(
        self,
        handle: RasterHandle,
        target: CompressionTarget,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> EncodeAttemptResult:
        if handle.source is not None and len(handle.source) <= target.max_bytes:
            logger.debug("Source already within %d bytes; skipping re-encode", target.max_bytes)
            return EncodeAttemptResult(data=handle.source, quality=None, dimensions=handle.dimensions)

        policy = self._policy
        if target.format_hint.is_lossy:
            schedule = quality_schedule(
                target.initial_quality,
                step=policy.quality_step,
                floor=policy.min_quality,
                max_attempts=policy.max_attempts,
            )
        else:
            schedule = [target.initial_quality]

        best: EncodeAttemptResult | None = None
        last: EncodeAttemptResult | None = None
        for quality in schedule:
            if cancel_event is not None and cancel_event.is_set():
                raise NormalizationCancelledError("Compression cancelled between quality steps.")
            last = await self._attempt(handle, target.format_hint, quality, stage="quality", best=best)
            if best is None or last.size < best.size:
                best = last
            if last.size <= target.max_bytes:
                logger.debug("Quality %.2f produced %d bytes", quality, last.size)
                return last

        if last is None or best is None:
            raise EncoderUnavailableError("quality", "No quality steps were attempted")
        if not policy.allow_downscale:
            raise QualityExhaustedError(
                "quality",
                f"Smallest encode is {best.size} bytes, budget is {target.max_bytes} bytes",
                best,
            )
        return await self._downscale(handle, target, last, best)

    async def _downscale(
        self,
        handle: RasterHandle,
        target: CompressionTarget,
        last: EncodeAttemptResult,
        best: EncodeAttemptResult,
    ) -> EncodeAttemptResult:
        policy = self._policy
        scale = math.sqrt(target.max_bytes / last.size) * policy.safety_margin
        if scale < policy.min_scale:
            logger.info("Refusing downscale to %.2f (floor %.2f)", scale, policy.min_scale)
            raise ScaleFloorExceededError(scale, policy.min_scale, best)

        transform = AffineTransform.scaling(handle.dimensions, scale)
        resized = await self._gateway.draw(handle, transform)
        result = await self._attempt(resized, target.format_hint, policy.resize_quality, stage="resize", best=best)
        if result.size < best.size:
            best = result
        if result.size > target.max_bytes:
            raise QualityExhaustedError(
                "resize",
                f"Encode at {result.dimensions} is still {result.size} bytes, budget is {target.max_bytes} bytes",
                best,
            )
        logger.debug("Downscaled to %s (%d bytes)", result.dimensions, result.size)
        return result

    async def _attempt(
        self,
        handle: RasterHandle,
        fmt: ImageFormat,
        quality: float,
        *,
        stage: str,
        best: EncodeAttemptResult | None,
    ) -> EncodeAttemptResult:
        encode_attempts_total.labels(stage=stage).inc()
        data = await self._gateway.encode(handle, fmt, quality)
        if not data:
            raise EncoderUnavailableError(stage, f"Encoder produced no {fmt.value} data", best)
        return EncodeAttemptResult(data=bytes(data), quality=quality, dimensions=handle.dimensions)
