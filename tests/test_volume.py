"""Tests for the Volume data model."""

from __future__ import annotations

import numpy as np
import pytest
import torch

from siddon_drr import ConfigurationError, Volume


def test_size_spacing_and_extent():
    volume = Volume(np.zeros((4, 5, 6)), spacing=(0.5, 1.0, 2.0))
    assert volume.size == (4, 5, 6)
    np.testing.assert_allclose(volume.extent, (2.0, 5.0, 12.0))
    np.testing.assert_allclose(volume.center, (1.0, 2.5, 6.0))


def test_scalar_spacing_is_isotropic():
    volume = Volume(np.zeros((2, 2, 2)), spacing=0.8)
    np.testing.assert_allclose(volume.spacing, (0.8, 0.8, 0.8))


@pytest.mark.parametrize("data", [np.zeros((3, 3)), np.zeros((3, 3, 3, 3)), np.zeros((0, 3, 3))])
def test_rejects_bad_shapes(data):
    with pytest.raises(ConfigurationError):
        Volume(data)


@pytest.mark.parametrize("spacing", [(1.0, 0.0, 1.0), (1.0, -1.0, 1.0), (1.0, 1.0), (1.0, float("inf"), 1.0)])
def test_rejects_bad_spacing(spacing):
    with pytest.raises(ConfigurationError):
        Volume(np.zeros((2, 2, 2)), spacing=spacing)


def test_buffer_is_read_only_copy():
    source = np.ones((2, 2, 2))
    volume = Volume(source)
    source[0, 0, 0] = 7.0
    assert volume.value_at(0, 0, 0) == 1.0
    with pytest.raises(ValueError):
        volume.data[0, 0, 0] = 3.0


def test_index_validity_and_access():
    data = np.arange(24, dtype=float).reshape(2, 3, 4)
    volume = Volume(data)
    assert volume.is_valid_index(1, 2, 3)
    assert not volume.is_valid_index(2, 0, 0)
    assert not volume.is_valid_index(0, -1, 0)
    assert volume.value_at(1, 2, 3) == 23.0
    with pytest.raises(IndexError):
        volume.value_at(0, 3, 0)


def test_continuous_index_to_point():
    volume = Volume(np.zeros((2, 2, 2)), spacing=(2.0, 1.0, 0.5), origin=(10.0, 0.0, -1.0))
    np.testing.assert_allclose(volume.continuous_index_to_point((0.5, 1.0, 4.0)), (11.0, 1.0, 1.0))


def test_from_torch():
    volume = Volume.from_torch(torch.ones(3, 4, 5, dtype=torch.float32), spacing=(1.0, 2.0, 3.0))
    assert volume.size == (3, 4, 5)
    assert volume.data.dtype == np.float64


def test_from_torch_rejects_arrays():
    with pytest.raises(ConfigurationError):
        Volume.from_torch(np.ones((3, 3, 3)))
