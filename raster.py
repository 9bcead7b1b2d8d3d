"""
In-memory RGBA raster shared by the crop and tone engines.
"""

from dataclasses import dataclass

import numpy as np
from PIL import Image


@dataclass
class Raster:
    """
    Full-resolution RGBA pixel grid, 8 bits per channel.
    ``pixels`` has shape (height, width, 4) and dtype uint8.
    """
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError(f"Expected (height, width, 4) RGBA array, got shape {self.pixels.shape}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {self.pixels.dtype}")

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def size(self):
        """(width, height), same order as PIL"""
        return (self.width, self.height)

    def copy(self) -> "Raster":
        """Independent copy; mutating it never touches this raster"""
        return Raster(self.pixels.copy())

    @classmethod
    def from_image(cls, image: Image.Image) -> "Raster":
        """Decode a PIL image of any mode into an owned RGBA raster"""
        return cls(np.array(image.convert("RGBA"), dtype=np.uint8))

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)
