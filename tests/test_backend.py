"""Tests for the sequential and parallel compute backends."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import logging

import torch
import pytest
import seamcarve.backend as backend_module
from seamcarve.backend import (ParallelBackend, SequentialBackend, device_available,
                               get_backend)
from seamcarve.carving import extract_batch
from seamcarve.config import CarvingConfig
from seamcarve.errors import BackendUnavailable, InvalidDimension

from conftest import make_index_buffer, make_random_buffer


@pytest.fixture
def backends():
    return SequentialBackend(), ParallelBackend('cpu')


class TestParallelMatchesSequential:
    def test_energy(self, backends):
        sequential, parallel = backends
        buffer = make_random_buffer(15, 11, seed=8)
        assert torch.equal(sequential.compute_energy(buffer).values,
                           parallel.compute_energy(buffer).values)

    def test_energy_is_on_host(self, backends):
        _, parallel = backends
        energy = parallel.compute_energy(make_random_buffer(5, 5))
        assert energy.values.device.type == 'cpu'

    @pytest.mark.parametrize('insert', [False, True])
    def test_apply_seams(self, backends, insert):
        """Both recompositions give the same pixels for one batch."""
        sequential, parallel = backends
        buffer = make_random_buffer(14, 10, seed=9)
        seams = extract_batch(buffer, 4)
        expected = sequential.apply_seams(buffer, seams, insert=insert)
        result = parallel.apply_seams(buffer, seams, insert=insert)
        assert result.shape == expected.shape
        assert torch.allclose(result.pixels, expected.pixels)

    def test_removal_keeps_order(self, backends):
        _, parallel = backends
        buffer = make_index_buffer(6, 2)
        seams = [torch.tensor([1, 2]), torch.tensor([3, 3])]
        carved = parallel.apply_seams(buffer, seams)
        assert carved.image()[0, :, 0].tolist() == [0., 2., 4., 5.]
        assert carved.image()[1, :, 0].tolist() == [0., 1., 4., 5.]

    def test_insert_last_column_duplicates(self, backends):
        """A seam on the last column has no right neighbour to blend with."""
        _, parallel = backends
        buffer = make_index_buffer(3, 2)
        grown = parallel.apply_seams(buffer, [torch.tensor([2, 2])], insert=True)
        assert grown.image()[0, :, 0].tolist() == [0., 1., 2., 2.]

    def test_insert_blends_right_neighbour(self, backends):
        _, parallel = backends
        buffer = make_index_buffer(4, 1)
        grown = parallel.apply_seams(buffer, [torch.tensor([1])], insert=True)
        assert grown.image()[0, :, 0].tolist() == [0., 1., 1.5, 2., 3.]

    def test_empty_batch_returns_input(self, backends):
        _, parallel = backends
        buffer = make_random_buffer(4, 4)
        assert parallel.apply_seams(buffer, []) is buffer

    def test_removing_every_column_is_invalid(self, backends):
        _, parallel = backends
        buffer = make_index_buffer(2, 1)
        with pytest.raises(InvalidDimension):
            parallel.apply_seams(buffer, [torch.tensor([0]), torch.tensor([1])])


class TestDeviceSelection:
    def test_cpu_always_available(self):
        assert device_available(torch.device('cpu'))

    @pytest.mark.skipif(torch.cuda.is_available(), reason="CUDA is present")
    def test_unavailable_device_raises(self):
        with pytest.raises(BackendUnavailable) as info:
            ParallelBackend('cuda')
        assert info.value.kind == 'BackendUnavailable'

    def test_get_backend_default_is_sequential(self):
        assert isinstance(get_backend(), SequentialBackend)

    def test_get_backend_parallel_on_cpu(self):
        backend = get_backend(CarvingConfig(backend='parallel', device='cpu',
                                            border_energy=3.0))
        assert isinstance(backend, ParallelBackend)
        assert backend.border_energy == 3.0

    def test_fallback_to_sequential(self, monkeypatch, caplog):
        """A missing device is logged and the sequential backend is used."""
        monkeypatch.setattr(backend_module, 'device_available', lambda device: False)
        with caplog.at_level(logging.WARNING, logger='seamcarve.backend'):
            backend = get_backend(CarvingConfig(backend='parallel', device='cuda'))
        assert isinstance(backend, SequentialBackend)
        assert 'falling back' in caplog.text
