"""Tests for projection geometry composition and caching."""

from __future__ import annotations

import math

import numpy as np
import pytest
import torch

from siddon_drr import ConfigurationError, GeometryComposer, Pose, compose_projection_transform
from siddon_drr.geometry import camera_rotation_matrix
from siddon_drr.transforms import transform_point


@pytest.fixture
def pose() -> Pose:
    return Pose(center=(5.0, 5.0, 5.0))


@pytest.mark.parametrize("angle", [0.0, 0.3, math.pi / 2, math.pi])
def test_isocenter_maps_onto_central_axis(pose, angle):
    forward, _ = compose_projection_transform(pose, angle, 1000.0)
    np.testing.assert_allclose(transform_point(forward, pose.center), [0.0, 0.0, -1000.0], atol=1e-9)


def test_forward_and_inverse_are_inverse(pose):
    pose.set_parameters([0.1, -0.2, 0.3, 4.0, -5.0, 6.0])
    forward, inverse = compose_projection_transform(pose, 0.7, 900.0)
    assert torch.allclose(forward @ inverse, torch.eye(4, dtype=torch.float64), atol=1e-12)


def test_pose_translation_is_applied_before_gantry_and_camera(pose):
    pose.translation = (3.0, -2.0, 7.0)
    forward, _ = compose_projection_transform(pose, 0.0, 1000.0)
    # Shifted isocenter (t.x, f + t.y, t.z) seen through the camera rotation.
    np.testing.assert_allclose(transform_point(forward, pose.center), [3.0, 7.0, -998.0], atol=1e-9)


def test_camera_rotation_points_second_axis_down_the_depth_axis():
    up = camera_rotation_matrix() @ torch.tensor([0.0, 1.0, 0.0, 1.0], dtype=torch.float64)
    assert torch.allclose(up, torch.tensor([0.0, 0.0, -1.0, 1.0], dtype=torch.float64), atol=1e-12)


def test_compose_requires_pose():
    with pytest.raises(ConfigurationError):
        compose_projection_transform(None, 0.0, 1000.0)


def test_source_position_at_zero_angle(pose):
    geometry = GeometryComposer(pose, 0.0, 1000.0).initialize()
    np.testing.assert_allclose(geometry.source_world, [5.0, -995.0, 5.0], atol=1e-9)


def test_source_rotates_with_gantry(pose):
    geometry = GeometryComposer(pose, math.pi / 2, 1000.0).initialize()
    np.testing.assert_allclose(geometry.source_world, [1005.0, 5.0, 5.0], atol=1e-9)


def test_source_world_is_read_only(pose):
    geometry = GeometryComposer(pose).initialize()
    with pytest.raises(ValueError):
        geometry.source_world[0] = 1.0


def test_recompute_returns_forward_and_inverse(pose):
    composer = GeometryComposer()
    forward, inverse = composer.recompute(pose, 0.2, 1200.0)
    assert forward.shape == (4, 4)
    assert torch.equal(inverse, composer.geometry.inverse)
    assert composer.projection_angle == 0.2
    assert composer.focal_distance == 1200.0


def test_recompute_without_pose_raises():
    with pytest.raises(ConfigurationError):
        GeometryComposer().recompute(None, 0.0, 1000.0)


def test_initialize_without_pose_raises():
    with pytest.raises(ConfigurationError):
        GeometryComposer().initialize()


def test_update_reuses_geometry_until_pose_changes(pose):
    composer = GeometryComposer(pose)
    first = composer.update()
    assert composer.update() is first
    assert not composer.is_stale()

    pose.angles = (0.0, 0.0, 0.1)
    assert composer.is_stale()
    second = composer.update()
    assert second is not first
    assert second.pose_mtime == pose.mtime


def test_parameter_changes_mark_geometry_stale(pose):
    composer = GeometryComposer(pose)
    composer.initialize()
    composer.projection_angle = 0.5
    assert composer.is_stale()
    composer.initialize()
    composer.focal_distance = 500.0
    assert composer.is_stale()


def test_swapping_pose_marks_geometry_stale(pose):
    older = Pose(center=(1.0, 1.0, 1.0))
    composer = GeometryComposer(pose)
    composer.initialize()
    composer.pose = older
    assert composer.is_stale()


def test_initialize_overrides_parameters(pose):
    composer = GeometryComposer()
    geometry = composer.initialize(pose=pose, projection_angle=0.25, focal_distance=750.0)
    assert geometry.projection_angle == 0.25
    assert geometry.focal_distance == 750.0
    assert composer.pose is pose


def test_to_volume_frame_batch_matches_single(pose):
    geometry = GeometryComposer(pose, 0.4).initialize()
    points = np.array([[0.0, 0.0, -1400.0], [3.0, -1.0, -1300.0]])
    batch = geometry.to_volume_frame_batch(points)
    for point, mapped in zip(points, batch):
        np.testing.assert_allclose(geometry.to_volume_frame(point), mapped)
