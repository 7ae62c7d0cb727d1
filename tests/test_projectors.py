"""Tests for detector geometry and DRR rendering."""

from __future__ import annotations

import logging
import math

import numpy as np
import pytest
import torch

from siddon_drr import ConfigurationError, DetectorGeometry, render_drr, render_drr_series


@pytest.fixture
def detector() -> DetectorGeometry:
    return DetectorGeometry((5, 3), spacing=(2.0, 2.0), source_to_detector=1400.0)


def test_pixel_points_layout(detector):
    points = detector.pixel_points()
    assert points.shape == (15, 3)
    np.testing.assert_allclose(points[0], (-4.0, -2.0, -1400.0))
    np.testing.assert_allclose(points[7], (0.0, 0.0, -1400.0))
    np.testing.assert_allclose(points[-1], (4.0, 2.0, -1400.0))
    np.testing.assert_allclose(detector.pixel_point(4, 2), points[-1])


def test_detector_offset_shifts_pixels():
    detector = DetectorGeometry((1, 1), offset=(3.0, -1.0), source_to_detector=100.0)
    np.testing.assert_allclose(detector.pixel_points()[0], (3.0, -1.0, -100.0))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"size": (0, 3)},
        {"size": (2.5, 3)},
        {"size": (3, 3), "spacing": (1.0, 0.0)},
        {"size": (3, 3), "source_to_detector": -5.0},
        {"size": (3, 3), "offset": (float("nan"), 0.0)},
    ],
)
def test_detector_rejects_invalid_arguments(kwargs):
    with pytest.raises(ConfigurationError):
        DetectorGeometry(**kwargs)


def test_render_drr_shape_dtype_and_center(interpolator, detector):
    image = render_drr(interpolator, detector, num_workers=1)
    assert image.shape == (3, 5)
    assert image.dtype == torch.float32
    assert image[1, 2].item() == pytest.approx(1000.0, rel=1e-5)


def test_render_drr_matches_direct_sampling(interpolator, detector):
    image = render_drr(interpolator, detector, num_workers=1)
    expected = interpolator.sample_many(detector.pixel_points()).reshape(detector.shape)
    np.testing.assert_allclose(image.numpy(), expected, rtol=1e-6)


def test_render_drr_is_independent_of_worker_count(interpolator, detector):
    single = render_drr(interpolator, detector, num_workers=1)
    parallel = render_drr(interpolator, detector, num_workers=4)
    assert torch.allclose(single, parallel, rtol=1e-6)


def test_render_drr_logs_summary(interpolator, detector, caplog):
    with caplog.at_level(logging.INFO, logger="siddon_drr.projectors"):
        render_drr(interpolator, detector, num_workers=2)
    assert "Rendered DRR 5x3" in caplog.text


def test_render_drr_rejects_non_positive_workers(interpolator, detector):
    with pytest.raises(ConfigurationError):
        render_drr(interpolator, detector, num_workers=0)


def test_render_drr_integer_output(interpolator, detector):
    interpolator.output_dtype = np.int16
    image = render_drr(interpolator, detector, num_workers=2)
    assert image.dtype == torch.int16
    assert image[1, 2].item() == 1000


def test_render_series_restores_angle(interpolator, detector):
    images = render_drr_series(interpolator, detector, [0.0, math.pi / 4], num_workers=2)
    assert images.shape == (2, 3, 5)
    assert images[0, 1, 2].item() == pytest.approx(1000.0, rel=1e-5)
    assert images[1, 1, 2].item() == pytest.approx(1000.0 * math.sqrt(2.0), rel=1e-5)
    assert interpolator.projection_angle == 0.0
    assert not interpolator.geometry_is_stale()


def test_render_series_accepts_tensor_angles(interpolator, detector):
    images = render_drr_series(interpolator, detector, torch.tensor([0.0, math.pi]), num_workers=1)
    assert torch.allclose(images[0], images[1].flip(-1), rtol=1e-5)


def test_render_series_with_no_angles(interpolator, detector):
    images = render_drr_series(interpolator, detector, [], num_workers=1)
    assert images.shape == (0, 3, 5)


def test_render_drr_defaults_to_interpolator_worker_count(interpolator, detector, caplog):
    interpolator.num_workers = 3
    with caplog.at_level(logging.INFO, logger="siddon_drr.projectors"):
        render_drr(interpolator, detector)
    assert "with 3 worker(s)" in caplog.text
