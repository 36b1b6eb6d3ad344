"""
Compute backends for the parallel-friendly stages of seam carving.

Energy evaluation and the final recomposition of a seam batch are
independent per pixel, so they can run on any torch device. The
dynamic-programming seam search is sequential along the scan axis and
always stays on the host, whatever backend is selected.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

import torch

from .buffer import CHANNELS, PixelBuffer, require_buffer
from .config import CarvingConfig
from .energy import DEFAULT_BORDER_ENERGY, EnergyMap, compute_energy
from .errors import BackendUnavailable
from .seam import apply_seams, resulting_span, seam_columns

logger = logging.getLogger(__name__)


class ComputeBackend(ABC):
    """Energy computation and seam recomposition for vertical seams."""

    name = 'base'

    def __init__(self, border_energy: float = DEFAULT_BORDER_ENERGY):
        self.border_energy = border_energy

    @abstractmethod
    def compute_energy(self, buffer: PixelBuffer) -> EnergyMap:
        """Energy map of `buffer`, returned on the host."""

    @abstractmethod
    def apply_seams(self, buffer: PixelBuffer, seams: Sequence[torch.Tensor],
                    insert: bool = False) -> PixelBuffer:
        """Remove or insert a batch of vertical seams in one rewrite."""

    def __repr__(self):
        return f"{type(self).__name__}(border_energy={self.border_energy})"


class SequentialBackend(ComputeBackend):
    """Host implementation: vectorized energy, row-by-row recomposition."""

    name = 'sequential'

    def compute_energy(self, buffer: PixelBuffer) -> EnergyMap:
        return compute_energy(buffer, self.border_energy)

    def apply_seams(self, buffer, seams, insert=False):
        return apply_seams(buffer, seams, insert=insert, axis='vertical')


def device_available(device: torch.device) -> bool:
    """Whether tensors can be allocated on `device`."""
    if device.type == 'cpu':
        return True
    if device.type == 'cuda':
        index = device.index or 0
        return torch.cuda.is_available() and index < torch.cuda.device_count()
    if device.type == 'mps':
        return torch.backends.mps.is_available()
    try:
        torch.empty(1, device=device)
    except RuntimeError:
        return False
    return True


def _gather_pixels(image: torch.Tensor, index: torch.Tensor) -> torch.Tensor:
    """Pick image[y, index[y, x]] for every destination pixel."""
    return torch.gather(image, 1, index.unsqueeze(-1).expand(-1, -1, CHANNELS))


class ParallelBackend(ComputeBackend):
    """
    Torch-device implementation.

    Every stage uploads its input, runs one pass where each output pixel is
    computed independently, and downloads the result before returning, so
    the surrounding pipeline sees a blocking call.

    Recomposition uses the sorted seam columns of each row as a fixed-size
    (H, k) index array. For removal the j-th seam shifts every destination
    column at or past `col_j - j` one to the right; for insertion the j-th
    new pixel sits at `col_j + j + 1`. `torch.searchsorted` counts those
    marks per destination pixel, which gives its source column directly.
    """

    name = 'parallel'

    def __init__(self, device: Union[str, torch.device] = 'cuda',
                 border_energy: float = DEFAULT_BORDER_ENERGY):
        super().__init__(border_energy)
        self.device = torch.device(device)
        if not device_available(self.device):
            raise BackendUnavailable(f"Torch device {self.device} is not available")

    def compute_energy(self, buffer: PixelBuffer) -> EnergyMap:
        energy = compute_energy(buffer, self.border_energy, device=self.device)
        return EnergyMap(energy.width, energy.height, energy.values.cpu())

    def apply_seams(self, buffer, seams, insert=False):
        require_buffer(buffer)
        if len(seams) == 0:
            return buffer

        W, H = buffer.width, buffer.height
        new_w = resulting_span(W, len(seams), insert, W, H)
        columns = seam_columns(buffer, seams).to(self.device)
        image = buffer.image().to(self.device)

        k = columns.shape[1]
        offsets = torch.arange(k, device=self.device)
        marks = (columns + offsets + 1) if insert else (columns - offsets)
        marks = marks.contiguous()

        xs = torch.arange(new_w, device=self.device).expand(H, new_w).contiguous()
        passed = torch.searchsorted(marks, xs, right=True)

        if insert:
            last = (passed - 1).clamp(min=0)
            is_new = (passed > 0) & (torch.gather(marks, 1, last) == xs)
            src = torch.where(is_new, torch.gather(columns, 1, last), xs - passed)
            partner = torch.where(is_new, (src + 1).clamp(max=W - 1), src)
            picked = _gather_pixels(image, src)
            blended = (picked + _gather_pixels(image, partner)) * 0.5
            carved = torch.where(is_new.unsqueeze(-1), blended, picked)
        else:
            carved = _gather_pixels(image, xs + passed)

        carved = carved.cpu().contiguous()
        return PixelBuffer(new_w, H, carved.view(new_w * H, CHANNELS))

    def __repr__(self):
        return f"ParallelBackend(device={self.device!s}, border_energy={self.border_energy})"


def get_backend(config: Optional[CarvingConfig] = None) -> ComputeBackend:
    """
    Build the backend named by `config`.

    An unavailable parallel device is not fatal: the sequential backend is
    returned instead and the fallback is logged.
    """
    config = config or CarvingConfig()
    if config.backend == 'parallel':
        try:
            return ParallelBackend(config.device, config.border_energy)
        except BackendUnavailable as exc:
            logger.warning("%s; falling back to the sequential backend", exc)
    return SequentialBackend(config.border_energy)
