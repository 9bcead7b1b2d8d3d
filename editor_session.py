"""
Photo editing session: the entry point the card application talks to.

A session is opened from encoded image bytes, lets the user crop and
toggle auto correction, and ends either with ``confirm()`` (cropped JPEG
bytes) or ``cancel()``. Nothing is written anywhere by the session itself.
"""

import io
import logging
from typing import Callable, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from crop_engine import CropController, MIN_SIZE, extract
from raster import Raster
from tone_normalize import (
    FilterTriple,
    apply_auto_correction,
    apply_filter_triple,
    derive_filter_triple,
    measure_brightness,
)


JPEG_QUALITY = 90


class LoadError(Exception):
    """Source bytes could not be decoded into an editable raster"""


def decode_raster(data: bytes) -> Raster:
    """
    Decode image bytes into an RGBA raster with EXIF orientation applied.
    Raises LoadError on anything Pillow cannot read.
    """
    logger = logging.getLogger(__name__)
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            oriented = ImageOps.exif_transpose(image)
            raster = Raster.from_image(oriented)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        logger.error(f"Could not decode image ({len(data)} bytes): {e}")
        raise LoadError(f"Could not decode image: {e}") from e

    if min(raster.width, raster.height) < MIN_SIZE:
        logger.error(f"Image too small to crop: {raster.width}x{raster.height}")
        raise LoadError(f"Image is {raster.width}x{raster.height}, at least {MIN_SIZE}x{MIN_SIZE} is required")

    return raster


def encode_jpeg(raster: Raster, quality: int = JPEG_QUALITY) -> bytes:
    """JPEG-encode a raster; transparent areas are flattened onto black"""
    image = raster.to_image()
    background = Image.new("RGBA", image.size, (0, 0, 0, 255))
    flattened = Image.alpha_composite(background, image).convert("RGB")

    buffer = io.BytesIO()
    flattened.save(buffer, "JPEG", quality=quality)
    return buffer.getvalue()


class EditorSession:
    """
    One crop/correct session over an exclusively owned raster.

    ``pristine`` is the decoded original and is never modified; ``working``
    is what the crop is taken from and is rebuilt from ``pristine``
    whenever auto correction is switched on or off.
    """
    def __init__(self, raster: Raster, display_scale: Optional[Callable[[], float]] = None):
        self.pristine = raster
        self.working = raster.copy()
        self.crop = CropController(raster.width, raster.height, display_scale)
        self.auto_corrected = False
        self.preview_filter: Optional[FilterTriple] = None
        self.closed = False

    def _check_open(self):
        if self.closed:
            raise RuntimeError("Editor session is closed")

    @property
    def region(self):
        return self.crop.region

    @property
    def display_raster(self) -> Raster:
        """What the editor should show: working pixels, through the preview filter if enabled"""
        self._check_open()
        if self.preview_filter is None:
            return self.working
        return apply_filter_triple(self.working, self.preview_filter)

    def toggle_auto_correction(self):
        """Switch the destructive auto correction on or off"""
        self._check_open()
        self.auto_corrected = not self.auto_corrected

        # Always restart from the original; the correction is not invertible
        self.working = self.pristine.copy()
        if self.auto_corrected:
            apply_auto_correction(self.working)

        logging.getLogger(__name__).info(f"Auto correction {'on' if self.auto_corrected else 'off'}")

        # Preview multipliers belong to the pixels now being shown
        if self.preview_filter is not None:
            self.preview_filter = derive_filter_triple(measure_brightness(self.working).value)
            logging.getLogger(__name__).info(f"Preview filter updated: {self.preview_filter.css()}")

    def toggle_preview_filter(self):
        """Switch the non-destructive filter triple preview on or off"""
        self._check_open()
        if self.preview_filter is None:
            brightness = measure_brightness(self.working).value
            self.preview_filter = derive_filter_triple(brightness)
            logging.getLogger(__name__).info(f"Preview filter on: {self.preview_filter.css()}")
        else:
            self.preview_filter = None
            logging.getLogger(__name__).info("Preview filter off")

    def reset(self):
        """Initial crop square, no correction, no preview filter"""
        self._check_open()
        self.crop.reset()
        self.auto_corrected = False
        self.preview_filter = None
        self.working = self.pristine.copy()

    def confirm(self) -> bytes:
        """Crop the working raster and return it as JPEG bytes. Ends the session."""
        self._check_open()
        region = self.crop.region
        cropped = extract(self.working, region)
        data = encode_jpeg(cropped)

        logging.getLogger(__name__).info(
            f"Session confirmed: crop=({region.x}, {region.y}, {region.width}x{region.height}), "
            f"auto_corrected={self.auto_corrected}, {len(data)} bytes"
        )
        self._discard()
        return data

    def cancel(self):
        """Abandon the session; nothing is returned or written"""
        self._check_open()
        logging.getLogger(__name__).info("Session cancelled")
        self._discard()

    def _discard(self):
        self.closed = True
        self.crop.end_drag()
        self.pristine = None
        self.working = None
        self.preview_filter = None


def open_session(data: bytes, display_scale: Optional[Callable[[], float]] = None) -> EditorSession:
    """
    Start an editing session from encoded image bytes.
    Raises LoadError if the bytes are not a usable image.
    """
    raster = decode_raster(data)
    logging.getLogger(__name__).info(f"Session opened: {raster.width}x{raster.height}")
    return EditorSession(raster, display_scale)
