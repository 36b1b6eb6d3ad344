"""Shared test fixtures for the seamcarve test suite."""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import torch
import pytest
from seamcarve.buffer import PixelBuffer


@pytest.fixture
def gray_buffer():
    """4x4 buffer of a single gray colour."""
    return PixelBuffer.uniform(4, 4, (0.5, 0.5, 0.5, 1.0))


@pytest.fixture
def random_buffer():
    """Seeded 12x9 random RGBA buffer."""
    return make_random_buffer(12, 9, seed=42)


def make_random_buffer(W, H, seed=0):
    """Random RGB with opaque alpha."""
    generator = torch.Generator().manual_seed(seed)
    rgb = torch.rand(H, W, 3, generator=generator)
    return PixelBuffer.from_image(rgb)


def make_index_buffer(W, H):
    """Channel 0 holds the column index, channel 1 the row index."""
    image = torch.zeros(H, W, 4)
    image[:, :, 0] = torch.arange(W, dtype=torch.float32).unsqueeze(0)
    image[:, :, 1] = torch.arange(H, dtype=torch.float32).unsqueeze(1)
    image[:, :, 3] = 1.0
    return PixelBuffer.from_image(image)


def make_edge_buffer(W, H, edge_col):
    """Black left of `edge_col`, white from it on."""
    image = torch.zeros(H, W, 3)
    image[:, edge_col:] = 1.0
    return PixelBuffer.from_image(image)
