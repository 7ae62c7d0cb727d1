"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import numpy as np
import pytest

from siddon_drr import Pose, SiddonJacobsRayCastInterpolator, Volume

# Imaging-frame point on the central ray, 400 mm behind the isocenter.
CENTRAL_TARGET = (0.0, 0.0, -1400.0)


@pytest.fixture
def uniform_volume() -> Volume:
    """Return a 10x10x10 volume of intensity 100 with 1 mm spacing."""

    return Volume(np.full((10, 10, 10), 100.0), spacing=(1.0, 1.0, 1.0))


@pytest.fixture
def asymmetric_volume() -> Volume:
    """Return a 10x10x10 volume with a bright slab along the low-x faces."""

    data = np.full((10, 10, 10), 10.0)
    data[:2, :, :] = 500.0
    return Volume(data)


@pytest.fixture
def random_volume() -> Volume:
    """Return a reproducible random volume with anisotropic spacing."""

    rng = np.random.default_rng(1234)
    return Volume(rng.uniform(0.0, 200.0, size=(12, 9, 7)), spacing=(1.0, 1.5, 2.0))


@pytest.fixture
def centered_pose(uniform_volume: Volume) -> Pose:
    """Return an identity pose whose isocenter is the volume center."""

    return Pose(center=uniform_volume.center)


@pytest.fixture
def interpolator(uniform_volume: Volume, centered_pose: Pose) -> SiddonJacobsRayCastInterpolator:
    """Return an initialized interpolator reporting mm-weighted integrals."""

    interp = SiddonJacobsRayCastInterpolator(
        uniform_volume,
        centered_pose,
        focal_distance=1000.0,
        projection_angle=0.0,
        threshold=0.0,
        physical_units=True,
    )
    interp.initialize_geometry()
    return interp
