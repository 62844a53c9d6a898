"""Orientation correction, size-bounded compression and portrait validation."""

from .encoder import EncoderPolicy, SizeBoundedEncoder, quality_schedule
from .errors import (
    EncoderUnavailableError,
    ImageProcessingError,
    ImageTooLargeError,
    InvalidImageError,
    NormalizationCancelledError,
    PipelineError,
    QualityExhaustedError,
    RasterizeError,
    RasterizerTimeoutError,
    ScaleFloorExceededError,
    SizeBoundError,
    UnsupportedImageError,
)
from .exif import read_orientation
from .normalize import ImageNormalizer, check_input
from .rasterizer import PillowRasterizer, Rasterizer, RasterizerGateway
from .transform import AffineTransform, calculate_optimal_dimensions, compute
from .types import (
    CompressionTarget,
    Dimensions,
    EncodeAttemptResult,
    ImageFormat,
    OrientationCode,
    RasterHandle,
)
from .validation import (
    ImageOrientation,
    OrientationValidation,
    PortraitRequirements,
    suggest_crop,
    validate,
)

__all__ = [
    "AffineTransform",
    "CompressionTarget",
    "Dimensions",
    "EncodeAttemptResult",
    "EncoderPolicy",
    "EncoderUnavailableError",
    "ImageFormat",
    "ImageNormalizer",
    "ImageOrientation",
    "ImageProcessingError",
    "ImageTooLargeError",
    "InvalidImageError",
    "NormalizationCancelledError",
    "OrientationCode",
    "OrientationValidation",
    "PillowRasterizer",
    "PipelineError",
    "PortraitRequirements",
    "QualityExhaustedError",
    "RasterHandle",
    "RasterizeError",
    "Rasterizer",
    "RasterizerGateway",
    "RasterizerTimeoutError",
    "ScaleFloorExceededError",
    "SizeBoundError",
    "SizeBoundedEncoder",
    "UnsupportedImageError",
    "calculate_optimal_dimensions",
    "check_input",
    "compute",
    "quality_schedule",
    "read_orientation",
    "suggest_crop",
    "validate",
]
