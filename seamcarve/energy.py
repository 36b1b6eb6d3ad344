"""
Energy functions for seam carving.

The energy function determines which pixels are "important".
Low-energy seams are preferred for removal and insertion.

There is one energy policy: the per-channel central-difference gradient
magnitude, with a fixed high energy on the border so seams never hug the
edge of the image. Both backends evaluate this same function.
"""

from dataclasses import dataclass
from typing import Optional, Union

import torch

from .buffer import PixelBuffer, require_buffer
from .errors import InvalidDimension

DEFAULT_BORDER_ENERGY = 1000.0


@dataclass(frozen=True, eq=False)
class EnergyMap:
    """
    Per-pixel energy, same size as its source buffer.

    Args:
        width: Number of columns
        height: Number of rows
        values: float32 tensor (width * height,), row-major
    """

    width: int
    height: int
    values: torch.Tensor

    def __post_init__(self):
        if self.values.numel() != self.width * self.height:
            raise InvalidDimension(
                f"Expected {self.width * self.height} energy values, "
                f"got {self.values.numel()}",
                width=self.width, height=self.height)

    @classmethod
    def from_grid(cls, grid: torch.Tensor) -> 'EnergyMap':
        """Wrap an (H, W) tensor."""
        H, W = grid.shape
        return cls(W, H, grid.reshape(-1))

    def as_grid(self) -> torch.Tensor:
        """(H, W) view of the values."""
        return self.values.view(self.height, self.width)


def compute_energy(buffer: PixelBuffer,
                   border_energy: float = DEFAULT_BORDER_ENERGY,
                   device: Optional[Union[str, torch.device]] = None) -> EnergyMap:
    """
    Compute central-difference gradient energy for a buffer.

    For an interior pixel (x, y):
        dx2 = sum_c (I(x+1, y, c) - I(x-1, y, c))^2
        dy2 = sum_c (I(x, y+1, c) - I(x, y-1, c))^2
        E(x, y) = sqrt(dx2 + dy2)
    over the R, G, B channels. Every pixel on the border gets
    `border_energy`, so the four neighbours always exist.

    Args:
        buffer: Source pixels
        border_energy: Energy for pixels in the first/last row or column
        device: torch device to evaluate on (default: where the pixels are)

    Returns:
        EnergyMap on the same device the computation ran on
    """
    require_buffer(buffer)
    image = buffer.image()
    if device is not None:
        image = image.to(device)
    rgb = image[:, :, :3]

    H, W = buffer.height, buffer.width
    energy = torch.full((H, W), float(border_energy),
                        dtype=torch.float32, device=rgb.device)

    if H > 2 and W > 2:
        dx = rgb[1:-1, 2:] - rgb[1:-1, :-2]
        dy = rgb[2:, 1:-1] - rgb[:-2, 1:-1]
        dx2 = (dx ** 2).sum(dim=2)
        dy2 = (dy ** 2).sum(dim=2)
        energy[1:-1, 1:-1] = torch.sqrt(dx2 + dy2)

    return EnergyMap.from_grid(energy)


def normalize_energy(energy: torch.Tensor, eps: float = 1e-8) -> torch.Tensor:
    """Rescale energy linearly so its smallest value is 0 and its largest 1.

    The transform is monotonic, so it never changes which seam is cheapest.
    A constant map comes out as all zeros.
    """
    low, high = torch.aminmax(energy)
    return (energy - low) / (high - low + eps)


def energy_buffer(energy: EnergyMap) -> PixelBuffer:
    """
    Grayscale picture of an energy map, brightest where energy is highest.

    The border constant would flatten everything else to black, so values
    are capped at the interior maximum before rescaling.
    """
    grid = energy.as_grid().detach().to('cpu', torch.float32)
    if energy.height > 2 and energy.width > 2:
        grid = grid.clamp(max=float(grid[1:-1, 1:-1].max()))
    gray = normalize_energy(grid)
    return PixelBuffer.from_image(gray.unsqueeze(-1).expand(-1, -1, 3))
