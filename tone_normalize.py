"""
Tone normalization: luminance measurement and the two corrections built
on it.

* Filter triple (non-destructive): brightness/contrast/saturate multipliers
  applied at display time, CSS filter semantics. Used to normalize photos
  on upload and for the live preview.
* Auto correction (destructive): brightness offset plus fixed contrast
  boost written into the pixel buffer. Used by the editor's auto-fix toggle.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from raster import Raster


SAMPLE_WIDTH = 200      # Analysis grid width (aspect preserved)
MIN_SAMPLES = 10_000    # Never average fewer pixels than this

PREVIEW_TARGET_BRIGHTNESS = 135
PREVIEW_MIN_BRIGHTNESS = 10     # Avoid dividing by (near) zero on black images
BRIGHTNESS_MUL_RANGE = (0.8, 1.6)
SATURATE_MUL = 1.1

AUTO_TARGET_BRIGHTNESS = 130
AUTO_CONTRAST_FACTOR = 1.2


@dataclass(frozen=True)
class BrightnessMetric:
    """Average perceived luminance (0-255) and how many pixels it was taken over"""
    value: int
    sampled_pixels: int


@dataclass(frozen=True)
class FilterTriple:
    """Display-time brightness/contrast/saturate multipliers (1.0 = unchanged)"""
    brightness: float
    contrast: float
    saturate: float

    def css(self) -> str:
        """CSS filter string for the card renderer"""
        return (f"brightness({self.brightness:.2f}) "
                f"contrast({self.contrast:.2f}) "
                f"saturate({self.saturate:g})")


def _sample_grid(pixels: np.ndarray) -> np.ndarray:
    """Downsample to roughly SAMPLE_WIDTH wide, keeping at least MIN_SAMPLES pixels"""
    height, width = pixels.shape[:2]
    total = width * height
    if width <= SAMPLE_WIDTH or total <= MIN_SAMPLES:
        return pixels

    scale = SAMPLE_WIDTH / width
    if total * scale * scale < MIN_SAMPLES:
        # Very wide or very short images: grow the grid until it holds enough pixels
        scale = math.sqrt(MIN_SAMPLES / total)

    sample_w = math.ceil(width * scale)
    sample_h = math.ceil(height * scale)
    if sample_w >= width or sample_h >= height:
        return pixels

    return cv2.resize(np.ascontiguousarray(pixels), (sample_w, sample_h), interpolation=cv2.INTER_AREA)


def measure_brightness(raster: Raster) -> BrightnessMetric:
    """
    Average perceived luminance 0.299 R + 0.587 G + 0.114 B, floored per
    pixel and over the mean. Alpha is ignored.
    """
    sample = _sample_grid(raster.pixels)
    rgb = sample[..., :3].astype(np.int64)

    # Integer weights keep gray 255 at exactly 255
    luminance = (299 * rgb[..., 0] + 587 * rgb[..., 1] + 114 * rgb[..., 2]) // 1000
    count = int(luminance.size)
    value = int(luminance.sum() // count)

    logging.getLogger(__name__).debug(
        f"Measured brightness {value} over {count} pixels ({raster.width}x{raster.height} source)"
    )
    return BrightnessMetric(value=value, sampled_pixels=count)


# ============================================================================
# Non-destructive path
# ============================================================================

def derive_filter_triple(brightness: int) -> FilterTriple:
    """Multipliers that pull the image toward the target brightness"""
    low, high = BRIGHTNESS_MUL_RANGE
    brightness_mul = PREVIEW_TARGET_BRIGHTNESS / max(brightness, PREVIEW_MIN_BRIGHTNESS)
    brightness_mul = max(low, min(brightness_mul, high))

    # Strong brightening washes the image out, dimming flattens it
    if brightness_mul > 1.2:
        contrast_mul = 1.15
    elif brightness_mul < 0.9:
        contrast_mul = 1.10
    else:
        contrast_mul = 1.05

    return FilterTriple(brightness=brightness_mul, contrast=contrast_mul, saturate=SATURATE_MUL)


def _saturate_matrix(s: float) -> np.ndarray:
    # feColorMatrix type="saturate"
    return np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ])


def apply_filter_triple(raster: Raster, triple: FilterTriple) -> Raster:
    """
    Render the raster through brightness, contrast and saturate filters, in
    that order. Returns a new raster; the input is never modified.
    """
    rgb = raster.pixels[..., :3].astype(np.float64)

    rgb = np.clip(rgb * triple.brightness, 0, 255)
    rgb = np.clip((rgb - 127.5) * triple.contrast + 127.5, 0, 255)
    rgb = np.clip(rgb @ _saturate_matrix(triple.saturate).T, 0, 255)

    out = raster.pixels.copy()
    out[..., :3] = np.rint(rgb).astype(np.uint8)
    return Raster(out)


# ============================================================================
# Destructive path
# ============================================================================

def auto_correction_offset(brightness: int) -> int:
    """Brightness offset added to every channel (never darkens)"""
    return max(0, AUTO_TARGET_BRIGHTNESS - brightness)


def apply_auto_correction(raster: Raster, brightness: Optional[int] = None) -> Raster:
    """
    Rewrite the raster's pixels in place: add the brightness offset to R, G
    and B, then stretch contrast around 128 by AUTO_CONTRAST_FACTOR.
    Alpha is unchanged. The transform clamps, so it cannot be undone; keep
    a pristine copy to go back.
    """
    if brightness is None:
        brightness = measure_brightness(raster).value
    offset = auto_correction_offset(brightness)

    rgb = raster.pixels[..., :3].astype(np.float64) + offset
    rgb = AUTO_CONTRAST_FACTOR * (rgb - 128) + 128
    raster.pixels[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)

    logging.getLogger(__name__).info(
        f"Auto correction applied: brightness={brightness}, offset={offset}, contrast={AUTO_CONTRAST_FACTOR}"
    )
    return raster
