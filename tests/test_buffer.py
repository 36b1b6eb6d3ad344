"""Tests for pixel buffers and the transpose adapter."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import torch
import pytest
from PIL import Image
from seamcarve.buffer import PixelBuffer, transpose, require_buffer
from seamcarve.errors import InvalidDimension, InvalidPixelData, MissingInput

from conftest import make_index_buffer, make_random_buffer


class TestPixelBuffer:
    def test_rejects_zero_dimension(self):
        """A buffer with no columns is invalid."""
        with pytest.raises(InvalidDimension) as info:
            PixelBuffer(0, 3, torch.zeros(0, 4))
        assert info.value.width == 0
        assert info.value.height == 3

    def test_rejects_wrong_pixel_count(self):
        with pytest.raises(InvalidDimension):
            PixelBuffer(3, 3, torch.zeros(8, 4))

    def test_rejects_nan_pixels(self):
        """A NaN channel is reported as bad pixel data, not a missing seam."""
        image = torch.rand(6, 8, 4)
        image[3, 4, 1] = float('nan')
        with pytest.raises(InvalidPixelData) as info:
            PixelBuffer.from_image(image)
        assert (info.value.width, info.value.height) == (8, 6)

    def test_rejects_infinite_pixels(self):
        pixels = torch.zeros(4, 4)
        pixels[2, 0] = float('inf')
        with pytest.raises(InvalidPixelData):
            PixelBuffer(2, 2, pixels)

    def test_row_major_indexing(self):
        """Pixel (x, y) lives at y * width + x."""
        buffer = make_index_buffer(5, 3)
        assert buffer.index(2, 1) == 7
        pixel = buffer.pixel(2, 1)
        assert pixel[0].item() == 2.0
        assert pixel[1].item() == 1.0

    def test_from_image_adds_opaque_alpha(self):
        buffer = PixelBuffer.from_image(torch.rand(4, 6, 3))
        assert buffer.shape == (6, 4)
        assert (buffer.pixels[:, 3] == 1.0).all()

    def test_from_image_copies_input(self):
        """Changing the source tensor afterwards must not change the buffer."""
        image = torch.zeros(2, 2, 4)
        buffer = PixelBuffer.from_image(image)
        image[0, 0, 0] = 1.0
        assert buffer.pixel(0, 0)[0].item() == 0.0

    def test_uint8_round_trip(self):
        """Byte input is scaled to [0, 1] and scales back exactly."""
        rng = np.random.default_rng(0)
        array = rng.integers(0, 256, size=(5, 7, 4), dtype=np.uint8)
        buffer = PixelBuffer.from_numpy(array)
        assert buffer.pixels.max() <= 1.0
        assert np.array_equal(buffer.to_numpy(np.uint8), array)

    def test_pil_round_trip(self):
        image = Image.new('RGB', (6, 4), (10, 20, 30))
        buffer = PixelBuffer.from_pil(image)
        assert buffer.shape == (6, 4)
        back = buffer.to_pil()
        assert back.size == (6, 4)
        assert back.getpixel((3, 2)) == (10, 20, 30, 255)

    def test_missing_input(self):
        with pytest.raises(MissingInput):
            PixelBuffer.from_image(None)
        with pytest.raises(MissingInput):
            require_buffer(None)

    def test_uniform(self):
        buffer = PixelBuffer.uniform(3, 2, (0.25, 0.5, 0.75, 1.0))
        assert buffer.shape == (3, 2)
        assert torch.equal(buffer.pixel(2, 1), torch.tensor([0.25, 0.5, 0.75, 1.0]))


class TestTranspose:
    def test_swaps_dimensions(self):
        buffer = make_index_buffer(3, 2)
        flipped = transpose(buffer)
        assert flipped.shape == (2, 3)

    def test_pixel_mapping(self):
        """Pixel (x, y) of the result is pixel (y, x) of the source."""
        buffer = make_index_buffer(3, 2)
        flipped = transpose(buffer)
        for y in range(flipped.height):
            for x in range(flipped.width):
                assert torch.equal(flipped.pixel(x, y), buffer.pixel(y, x))

    def test_self_inverse(self):
        """Transposing a 3x2 buffer twice gives back the original exactly."""
        buffer = make_random_buffer(3, 2, seed=7)
        assert transpose(transpose(buffer)).equals(buffer)

    def test_does_not_touch_input(self):
        buffer = make_random_buffer(4, 5, seed=1)
        before = buffer.pixels.clone()
        transpose(buffer)
        assert torch.equal(buffer.pixels, before)
