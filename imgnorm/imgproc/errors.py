"""Exception hierarchy for the normalisation pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imgnorm.imgproc.types import EncodeAttemptResult


class ImageProcessingError(RuntimeError):
    """Base class for every error raised by the image pipeline."""


class ExifParseError(ImageProcessingError):
    """Raised internally when the EXIF block is malformed. Never leaves the reader."""


class RasterizeError(ImageProcessingError):
    """Raised when the rasterizer fails to decode, draw or encode."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"Rasterizer failed during {stage}: {message}")


class RasterizerTimeoutError(ImageProcessingError):
    """Raised when a rasterizer call exceeds the caller-supplied deadline.

    Deliberately not a :class:`RasterizeError` subclass.
    """

    def __init__(self, stage: str, timeout: float) -> None:
        self.stage = stage
        self.timeout = timeout
        super().__init__(f"Rasterizer timed out during {stage} after {timeout:.1f}s")


class InvalidImageError(ImageProcessingError):
    """Input rejected before any decoding takes place."""


class UnsupportedImageError(InvalidImageError):
    """Input is empty or not a recognised image container."""


class ImageTooLargeError(InvalidImageError):
    """Input exceeds the configured size ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Image is {size} bytes, the maximum accepted is {limit} bytes")


class SizeBoundError(ImageProcessingError):
    """Raised when the byte budget cannot be met.

    ``best`` holds the smallest encode produced before giving up, so callers
    may still decide to accept it.
    """

    def __init__(
        self,
        stage: str,
        message: str,
        best: EncodeAttemptResult | None = None,
    ) -> None:
        self.stage = stage
        self.best = best
        super().__init__(message)


class QualityExhaustedError(SizeBoundError):
    """Every quality step (and the optional downscale) stayed over budget."""


class ScaleFloorExceededError(SizeBoundError):
    """The downscale needed to fit the budget falls below the configured floor."""

    def __init__(
        self,
        scale: float,
        floor: float,
        best: EncodeAttemptResult | None = None,
    ) -> None:
        self.scale = scale
        self.floor = floor
        super().__init__(
            "downscale",
            f"Required scale {scale:.2f} is below the minimum of {floor:.2f}",
            best,
        )


class EncoderUnavailableError(SizeBoundError):
    """The rasterizer returned no data for the requested format."""


class NormalizationCancelledError(ImageProcessingError):
    """Raised when a cancellation event is set between encode attempts."""


class PipelineError(ImageProcessingError):
    """Wraps a stage failure with the name of the pipeline stage."""

    def __init__(self, stage: str, cause: ImageProcessingError) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Image normalisation failed at {stage}: {cause}")
