"""
Pixel buffers and the transpose used to run horizontal seams as vertical ones.

A PixelBuffer is the unit of state passed between pipeline stages. Pixels
are stored flat and row-major: pixel (x, y) lives at index y * width + x,
with four float channels (RGBA) in [0, 1]. Every stage returns a new buffer;
no buffer is modified after it is built.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
import torch
from PIL import Image

from .errors import InvalidDimension, InvalidPixelData, MissingInput

CHANNELS = 4


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    Immutable RGBA image.

    Args:
        width: Number of columns (>= 1)
        height: Number of rows (>= 1)
        pixels: float32 tensor (width * height, 4), row-major
    """

    width: int
    height: int
    pixels: torch.Tensor

    def __post_init__(self):
        if self.width < 1 or self.height < 1:
            raise InvalidDimension(
                f"Buffer dimensions must be positive, got {self.width}x{self.height}",
                width=self.width, height=self.height)
        if tuple(self.pixels.shape) != (self.width * self.height, CHANNELS):
            raise InvalidDimension(
                f"Expected {self.width * self.height} RGBA pixels, "
                f"got tensor of shape {tuple(self.pixels.shape)}",
                width=self.width, height=self.height)
        if not bool(torch.isfinite(self.pixels).all()):
            raise InvalidPixelData(
                "Pixel values must be finite, found NaN or infinite channels",
                width=self.width, height=self.height)

    @classmethod
    def from_image(cls, image: torch.Tensor) -> 'PixelBuffer':
        """
        Build a buffer from an (H, W, 3) or (H, W, 4) float tensor.

        A missing alpha channel is filled with 1.0.
        """
        if image is None:
            raise MissingInput("No source image supplied")
        if image.dim() != 3 or image.shape[2] not in (3, CHANNELS):
            raise InvalidDimension(
                f"Expected an (H, W, 3|4) image, got shape {tuple(image.shape)}")

        H, W, C = image.shape
        image = image.to(dtype=torch.float32, device='cpu')
        if C == 3:
            alpha = torch.ones(H, W, 1, dtype=torch.float32)
            image = torch.cat([image, alpha], dim=2)
        return cls(W, H, image.reshape(H * W, CHANNELS).clone())

    @classmethod
    def from_numpy(cls, array: np.ndarray) -> 'PixelBuffer':
        """Build a buffer from an (H, W, 3|4) array in byte or [0, 1] range."""
        if array is None:
            raise MissingInput("No source array supplied")
        if array.dtype == np.uint8:
            data = array.astype(np.float32) / 255.0
        else:
            data = array.astype(np.float32)
        return cls.from_image(torch.from_numpy(np.ascontiguousarray(data)))

    @classmethod
    def from_pil(cls, image: Image.Image) -> 'PixelBuffer':
        """Build a buffer from a Pillow image (any mode, converted to RGBA)."""
        if image is None:
            raise MissingInput("No source image supplied")
        return cls.from_numpy(np.array(image.convert('RGBA'), dtype=np.uint8))

    @classmethod
    def uniform(cls, width: int, height: int,
                color: Sequence[float] = (0.5, 0.5, 0.5, 1.0)) -> 'PixelBuffer':
        """A buffer where every pixel has the same colour."""
        if width < 1 or height < 1:
            raise InvalidDimension(
                f"Buffer dimensions must be positive, got {width}x{height}",
                width=width, height=height)
        pixel = torch.tensor(color, dtype=torch.float32)
        return cls(width, height, pixel.repeat(width * height, 1))

    @property
    def shape(self) -> Tuple[int, int]:
        """(width, height)."""
        return self.width, self.height

    def image(self) -> torch.Tensor:
        """(H, W, 4) view of the pixels. Do not write through it."""
        return self.pixels.view(self.height, self.width, CHANNELS)

    def index(self, x: int, y: int) -> int:
        return y * self.width + x

    def pixel(self, x: int, y: int) -> torch.Tensor:
        return self.pixels[self.index(x, y)].clone()

    def equals(self, other: 'PixelBuffer') -> bool:
        """True when both buffers have the same size and identical pixels."""
        return (self.shape == other.shape
                and torch.equal(self.pixels, other.pixels))

    def to_numpy(self, dtype=np.float32) -> np.ndarray:
        """(H, W, 4) array; uint8 output is rescaled to [0, 255]."""
        array = self.image().numpy().copy()
        if dtype == np.uint8:
            return (array * 255.0).round().clip(0, 255).astype(np.uint8)
        return array.astype(dtype)

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.to_numpy(np.uint8))


def require_buffer(buffer: PixelBuffer) -> PixelBuffer:
    """Return the buffer, or raise MissingInput if there is none."""
    if buffer is None:
        raise MissingInput("No source buffer supplied")
    return buffer


def transpose(buffer: PixelBuffer) -> PixelBuffer:
    """
    Swap rows and columns.

    Pixel (x, y) of the result is pixel (y, x) of the input. Applying it
    twice returns the original buffer exactly.
    """
    require_buffer(buffer)
    flipped = buffer.image().permute(1, 0, 2).contiguous()
    return PixelBuffer(buffer.height, buffer.width,
                       flipped.view(buffer.width * buffer.height, CHANNELS))


def check_axis(axis: str) -> str:
    if axis not in ('vertical', 'horizontal'):
        raise ValueError(f"Invalid direction: {axis}")
    return axis
