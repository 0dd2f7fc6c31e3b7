"""
Pixel format policy.

Maps whatever format the sensor ended up streaming to the converter target
and canonical layout used for every emitted FrameBuffer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from models.frame import PixelFormat

MONO8 = "Mono8"
BAYER_RG8 = "BayerRG8"

# Converter targets, named after the packed layouts they produce.
TARGET_MONO8 = "Mono8"
TARGET_BGR8_PACKED = "BGR8packed"
TARGET_BGRA8_PACKED = "BGRA8packed"


@dataclass(frozen=True)
class FormatPlan:
    """
    Result of format negotiation.

    Attributes:
        sensor_format: Format string reported by the sensor (may be empty).
        converter_target: Packed layout the converter must produce.
        pixel_format: Canonical pixel format of emitted frames.
        bytes_per_pixel: Bytes per pixel of emitted frames.
    """
    sensor_format: str
    converter_target: str
    pixel_format: PixelFormat
    bytes_per_pixel: int


def select_format(sensor_format: Optional[str]) -> FormatPlan:
    """Choose the canonical output for a sensor format. Never raises."""
    reported = sensor_format or ""
    pf = reported.lower()

    if "mono8" in pf:
        return FormatPlan(reported, TARGET_MONO8, PixelFormat.MONO8, 1)
    if "bayer" in pf and "rg8" in pf:
        return FormatPlan(reported, TARGET_BGR8_PACKED, PixelFormat.BGR24, 3)
    if "rgb8" in pf or "bgr8" in pf:
        return FormatPlan(reported, TARGET_BGR8_PACKED, PixelFormat.BGR24, 3)
    if "bgra8" in pf or "rgba8" in pf:
        return FormatPlan(reported, TARGET_BGRA8_PACKED, PixelFormat.BGRA32, 4)
    return FormatPlan(reported, TARGET_BGRA8_PACKED, PixelFormat.BGRA32, 4)


def preferred_sensor_format(available: Iterable[str]) -> Optional[str]:
    """
    Pick the format to request from the sensor: Mono8, then BayerRG8.

    Returns None when neither is offered and the sensor default should stay.
    """
    by_lower = {fmt.lower(): fmt for fmt in available}
    for wanted in (MONO8, BAYER_RG8):
        if wanted.lower() in by_lower:
            return by_lower[wanted.lower()]
    return None
