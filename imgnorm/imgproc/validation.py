"""Portrait upload validation based on final pixel dimensions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from imgnorm.config.settings import get_settings
from imgnorm.imgproc.types import Dimensions


class ImageOrientation(str, Enum):
    """Shape of an image as displayed."""

    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    SQUARE = "square"


class PortraitRequirements(BaseModel):
    """Resolution floor and target aspect ratio for fit uploads."""

    min_width: int = Field(default=400, gt=0)
    min_height: int = Field(default=800, gt=0)
    preferred_aspect_ratio: float = Field(default=0.75, gt=0)
    tolerance: float = Field(default=0.05, ge=0)
    warning_ratio: float = Field(default=0.8, gt=0, le=1)

    @classmethod
    def from_settings(cls) -> PortraitRequirements:
        settings = get_settings()
        return cls(
            min_width=settings.portrait_min_width,
            min_height=settings.portrait_min_height,
            preferred_aspect_ratio=settings.portrait_aspect_ratio,
            tolerance=settings.portrait_tolerance,
        )


class OrientationValidation(BaseModel):
    """Outcome of :func:`validate`."""

    is_valid: bool
    aspect_ratio: float
    orientation: ImageOrientation
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    feedback: list[str] = Field(default_factory=list)


@dataclass(slots=True)
class CropSuggestion:
    """Centred crop that brings an image to the preferred aspect ratio."""

    should_crop: bool
    crop_axis: str | None
    dimensions: Dimensions
    offset_x: int
    offset_y: int
    recommendation: str


_COMMON_RATIOS: tuple[tuple[float, str], ...] = (
    (3 / 4, "3:4"),
    (4 / 3, "4:3"),
    (9 / 16, "9:16"),
    (16 / 9, "16:9"),
    (1.0, "1:1"),
    (2 / 3, "2:3"),
    (3 / 2, "3:2"),
)


def classify_orientation(dims: Dimensions) -> ImageOrientation:
    if dims.width > dims.height:
        return ImageOrientation.LANDSCAPE
    if dims.width == dims.height:
        return ImageOrientation.SQUARE
    return ImageOrientation.PORTRAIT


def aspect_ratio_label(ratio: float, tolerance: float = 0.05) -> str:
    """Closest common ratio name (``"3:4"``) or a reduced ``w:h`` fallback."""

    for value, label in _COMMON_RATIOS:
        if abs(ratio - value) < tolerance:
            return label
    width = round(ratio * 100)
    divisor = math.gcd(width, 100) or 1
    return f"{width // divisor}:{100 // divisor}"


def suggest_crop(dims: Dimensions, requirements: PortraitRequirements | None = None) -> CropSuggestion:
    requirements = requirements or PortraitRequirements.from_settings()
    target = requirements.preferred_aspect_ratio
    ratio = dims.aspect_ratio

    if ratio > target and not math.isclose(ratio, target):
        new_width = max(1, round(dims.height * target))
        return CropSuggestion(
            should_crop=True,
            crop_axis="width",
            dimensions=Dimensions(new_width, dims.height),
            offset_x=round((dims.width - new_width) / 2),
            offset_y=0,
            recommendation="Consider cropping the sides to focus on your outfit",
        )
    if ratio < target and not math.isclose(ratio, target):
        new_height = max(1, round(dims.width / target))
        return CropSuggestion(
            should_crop=True,
            crop_axis="height",
            dimensions=Dimensions(dims.width, new_height),
            offset_x=0,
            offset_y=round((dims.height - new_height) / 2),
            recommendation="Consider cropping the top/bottom to improve proportions",
        )
    return CropSuggestion(
        should_crop=False,
        crop_axis=None,
        dimensions=dims,
        offset_x=0,
        offset_y=0,
        recommendation="Your image proportions are already ideal!",
    )


def _exceeds(deviation: float, limit: float) -> bool:
    return deviation > limit and not math.isclose(deviation, limit, rel_tol=1e-9, abs_tol=1e-12)


def validate(dims: Dimensions, requirements: PortraitRequirements | None = None) -> OrientationValidation:
    """Check ``dims`` against the portrait requirements.

    Every rule runs, so the result lists all violations at once. Warnings
    never affect ``is_valid``.
    """

    requirements = requirements or PortraitRequirements.from_settings()
    ratio = dims.aspect_ratio
    orientation = classify_orientation(dims)
    target = requirements.preferred_aspect_ratio
    tolerance = requirements.tolerance

    errors: list[str] = []
    warnings: list[str] = []
    feedback: list[str] = []

    if dims.width < requirements.min_width or dims.height < requirements.min_height:
        errors.append(
            f"Image resolution {dims} is below the minimum of "
            f"{requirements.min_width}x{requirements.min_height} pixels"
        )
        feedback.append(
            f"Use a photo of at least {requirements.min_width}x{requirements.min_height} pixels, "
            "for example the rear camera at full resolution"
        )

    deviation = abs(ratio - target)
    if _exceeds(deviation, tolerance):
        crop = suggest_crop(dims, requirements)
        if ratio > target:
            errors.append(
                f"Image is too wide (aspect ratio {ratio:.2f}, expected {target:.2f} ± {tolerance:.2f})"
            )
        else:
            errors.append(
                f"Image is too tall/narrow (aspect ratio {ratio:.2f}, expected {target:.2f} ± {tolerance:.2f})"
            )
        feedback.append(f"{crop.recommendation} ({crop.dimensions} keeps a {aspect_ratio_label(target)} frame)")
    elif _exceeds(deviation, tolerance * requirements.warning_ratio):
        warnings.append(
            f"Aspect ratio {ratio:.2f} is near the edge of the acceptable range "
            f"{target - tolerance:.2f}-{target + tolerance:.2f}"
        )

    if orientation is not ImageOrientation.PORTRAIT:
        errors.append(f"Image must be in portrait orientation (detected {orientation.value})")
        if orientation is ImageOrientation.LANDSCAPE:
            feedback.append("Rotate your phone to portrait mode for better results")
        else:
            feedback.append("Try taking a taller photo to capture more of your outfit")

    if not errors:
        feedback.insert(0, "Perfect! Portrait orientation is ideal for fit uploads")

    return OrientationValidation(
        is_valid=not errors,
        aspect_ratio=ratio,
        orientation=orientation,
        errors=errors,
        warnings=warnings,
        feedback=feedback,
    )
