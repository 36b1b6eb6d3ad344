"""Configuration for the seam carving pipeline."""

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping, Tuple

BACKENDS = ('sequential', 'parallel')


@dataclass(frozen=True)
class CarvingConfig:
    """
    Settings shared by the batch scheduler, the backends and the resizer.

    Attributes:
        border_energy: Energy assigned to every border pixel
        sub_batch_size: Maximum number of seams extracted against one
            energy map before it is recomputed
        backend: 'sequential' (host) or 'parallel' (torch device)
        device: torch device used by the parallel backend
        highlight_color: RGBA colour painted over seams in overlays
        large_batch_threshold: Batches larger than this are noted in the log
    """

    border_energy: float = 1000.0
    sub_batch_size: int = 20
    backend: str = 'sequential'
    device: str = 'cuda'
    highlight_color: Tuple[float, float, float, float] = (1.0, 0.0, 0.0, 1.0)
    large_batch_threshold: int = 50

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ValueError(f"Invalid backend: {self.backend!r}. "
                             f"Must be one of {BACKENDS}.")
        if self.sub_batch_size < 1:
            raise ValueError(f"sub_batch_size must be >= 1, got {self.sub_batch_size}")
        if not math.isfinite(self.border_energy) or self.border_energy < 0:
            raise ValueError(f"border_energy must be finite and >= 0, got {self.border_energy}")
        if len(self.highlight_color) != 4:
            raise ValueError("highlight_color must have 4 (RGBA) components")
        # Normalise list input so the frozen config stays hashable.
        object.__setattr__(self, 'highlight_color',
                           tuple(float(c) for c in self.highlight_color))

    @classmethod
    def from_dict(cls, settings: Mapping[str, Any]) -> 'CarvingConfig':
        """Build a config from a mapping, ignoring keys it does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in settings.items() if k in known})
