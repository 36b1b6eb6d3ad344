"""
Content-aware image resizing by seam carving.

Based on "Seam Carving for Content-Aware Image Resizing"
by Avidan & Shamir, 2007.
"""

import logging

__version__ = "0.1.0"

from .errors import (SeamCarvingError, InvalidDimension, MissingInput,
                     BackendUnavailable, MalformedSeam, InvalidPixelData)
from .config import CarvingConfig
from .buffer import PixelBuffer, transpose
from .energy import EnergyMap, compute_energy, normalize_energy, energy_buffer
from .seam import (CumulativeCostTable, build_cost_table, extract_seam, erase_seam,
                   validate_seam, remove_seam, insert_seam, apply_seams)
from .backend import ComputeBackend, SequentialBackend, ParallelBackend, get_backend
from .carving import (
    extract_batch,
    apply_batch,
    carve_seams,
    carve_image,
    highlight_seams,
    SeamCarver,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    'SeamCarvingError',
    'InvalidDimension',
    'MissingInput',
    'BackendUnavailable',
    'MalformedSeam',
    'InvalidPixelData',
    'CarvingConfig',
    'PixelBuffer',
    'transpose',
    'EnergyMap',
    'compute_energy',
    'normalize_energy',
    'energy_buffer',
    'CumulativeCostTable',
    'build_cost_table',
    'extract_seam',
    'erase_seam',
    'validate_seam',
    'remove_seam',
    'insert_seam',
    'apply_seams',
    'ComputeBackend',
    'SequentialBackend',
    'ParallelBackend',
    'get_backend',
    'extract_batch',
    'apply_batch',
    'carve_seams',
    'carve_image',
    'highlight_seams',
    'SeamCarver',
]
