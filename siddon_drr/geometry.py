"""Projection geometry for divergent-beam DRR generation.

This module composes the single rigid transform that maps points of the
imaging (camera) frame, where the X-ray source sits at the origin and looks
down the negative third axis, into the native frame of the volume.

The forward transform, applied right to left to a volume point, is::

    forward = CamRot @ CamShift @ GantryRot @ Pose

- ``Pose`` places the volume at its current world pose.
- ``GantryRot`` rotates by ``-projection_angle`` about the third axis through
  the isocenter, simulating the gantry rotation.
- ``CamShift`` translates by ``(-iso_x, focal_distance - iso_y, -iso_z)`` so
  that the source lands on the origin.
- ``CamRot`` rotates by -90 degrees about the first axis, so that the
  isocenter ends up at ``(0, 0, -focal_distance)`` with the second axis up.

Ray casting uses the inverse of that composition.
"""

import logging
import threading
from dataclasses import dataclass

import numpy as np
import torch

from .constants import (
    _CAMERA_ROTATION_X,
    _DEFAULT_FOCAL_DISTANCE,
    _DEFAULT_PROJECTION_ANGLE,
    _SOURCE_POINT,
)
from .exceptions import ConfigurationError
from .transforms import (
    euler_zyx_matrix,
    invert_rigid,
    rigid_matrix,
    transform_point,
    transform_points,
    translation_matrix,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Transform Composition
# ============================================================================

def gantry_rotation_matrix(projection_angle, isocenter):
    """Rotation by ``-projection_angle`` about the third axis through `isocenter`."""
    return rigid_matrix(euler_zyx_matrix(0.0, 0.0, -projection_angle), center=isocenter)


def camera_shift_matrix(focal_distance, isocenter):
    """Translation moving the X-ray source to the origin."""
    iso = torch.as_tensor(isocenter, dtype=torch.float64)
    return translation_matrix([-iso[0].item(), focal_distance - iso[1].item(), -iso[2].item()])


def camera_rotation_matrix():
    """Fixed -90 degree rotation about the first axis."""
    return rigid_matrix(euler_zyx_matrix(_CAMERA_ROTATION_X, 0.0, 0.0))


def compose_projection_transform(pose, projection_angle, focal_distance):
    """Compose the volume-to-camera transform and its inverse.

    Parameters
    ----------
    pose : Pose
        Current pose of the volume; its center is the isocenter.
    projection_angle : float
        Gantry rotation angle in radians.
    focal_distance : float
        Source to isocenter distance in mm.

    Returns
    -------
    forward : torch.Tensor
        Homogeneous (4, 4) matrix mapping volume points to the camera frame.
    inverse : torch.Tensor
        Homogeneous (4, 4) matrix mapping camera points to the volume frame.

    Raises
    ------
    ConfigurationError
        If `pose` is None.
    """
    if pose is None:
        raise ConfigurationError("Pose transform is not set")

    isocenter = pose.center
    forward = torch.eye(4, dtype=torch.float64)
    forward = pose.matrix() @ forward
    forward = gantry_rotation_matrix(projection_angle, isocenter) @ forward
    forward = camera_shift_matrix(focal_distance, isocenter) @ forward
    forward = camera_rotation_matrix() @ forward
    return forward, invert_rigid(forward)


# ============================================================================
# Cached Geometry
# ============================================================================

@dataclass(frozen=True, eq=False)
class ProjectionGeometry:
    """Immutable snapshot of the composed projection geometry.

    Attributes
    ----------
    forward : torch.Tensor
        Volume-to-camera transform, shape (4, 4).
    inverse : torch.Tensor
        Camera-to-volume transform, shape (4, 4).
    source_world : numpy.ndarray
        X-ray source expressed in the volume's native frame, shape (3,).
    pose_mtime : int
        Pose modification stamp the snapshot was computed from.
    projection_angle : float
    focal_distance : float
    """

    forward: torch.Tensor
    inverse: torch.Tensor
    source_world: np.ndarray
    pose_mtime: int
    projection_angle: float
    focal_distance: float

    def to_volume_frame(self, point):
        """Map a camera-frame point into the volume's native frame."""
        return transform_point(self.inverse, point)

    def to_volume_frame_batch(self, points):
        """Map an (n, 3) array of camera-frame points into the volume frame."""
        return transform_points(self.inverse, points)


class GeometryComposer:
    """Owns the composed projection transform and its cache state.

    The composer is the only mutable state shared by ray evaluations.
    Recomputation happens under a lock and publishes a new immutable
    :class:`ProjectionGeometry`; readers only ever see complete snapshots.
    Callers should still run :meth:`initialize` before fanning out ray
    evaluations across threads, so that every ray of a batch uses the same
    geometry.

    Parameters
    ----------
    pose : Pose, optional
        Pose of the volume. Must be set before the first recomputation.
    projection_angle : float, optional
        Gantry rotation angle in radians (default: 0.0).
    focal_distance : float, optional
        Source to isocenter distance in mm (default: 1000.0).

    Examples
    --------
    >>> composer = GeometryComposer(Pose(center=(5.0, 5.0, 5.0)))
    >>> geometry = composer.initialize()
    >>> geometry.source_world
    array([   5., -995.,    5.])
    """

    def __init__(self, pose=None, projection_angle=_DEFAULT_PROJECTION_ANGLE,
                 focal_distance=_DEFAULT_FOCAL_DISTANCE):
        self._pose = pose
        self._projection_angle = float(projection_angle)
        self._focal_distance = float(focal_distance)
        self._geometry = None
        self._computed_pose = None
        self._lock = threading.Lock()

    def __repr__(self):
        stamp = None if self._geometry is None else self._geometry.pose_mtime
        return (
            f"GeometryComposer(projection_angle={self._projection_angle}, "
            f"focal_distance={self._focal_distance}, pose_mtime={stamp})"
        )

    @property
    def pose(self):
        return self._pose

    @pose.setter
    def pose(self, pose):
        self._pose = pose

    @property
    def projection_angle(self):
        return self._projection_angle

    @projection_angle.setter
    def projection_angle(self, value):
        self._projection_angle = float(value)

    @property
    def focal_distance(self):
        return self._focal_distance

    @focal_distance.setter
    def focal_distance(self, value):
        self._focal_distance = float(value)

    @property
    def geometry(self):
        """Latest :class:`ProjectionGeometry`, or None before the first computation."""
        return self._geometry

    def is_stale(self):
        """True if the cached geometry no longer matches the current inputs."""
        geometry = self._geometry
        if geometry is None or self._pose is None:
            return True
        return (
            self._pose is not self._computed_pose
            or self._pose.mtime > geometry.pose_mtime
            or self._projection_angle != geometry.projection_angle
            or self._focal_distance != geometry.focal_distance
        )

    def _compute_locked(self):
        forward, inverse = compose_projection_transform(
            self._pose, self._projection_angle, self._focal_distance
        )
        source_world = transform_point(inverse, _SOURCE_POINT)
        source_world.setflags(write=False)
        self._computed_pose = self._pose
        self._geometry = ProjectionGeometry(
            forward=forward,
            inverse=inverse,
            source_world=source_world,
            pose_mtime=self._pose.mtime,
            projection_angle=self._projection_angle,
            focal_distance=self._focal_distance,
        )
        logger.debug(
            "Projection geometry recomputed: angle=%.6f focal=%.3f pose_mtime=%d source=%s",
            self._projection_angle, self._focal_distance, self._pose.mtime, source_world.tolist(),
        )
        return self._geometry

    def recompute(self, pose, projection_angle, focal_distance):
        """Set the inputs and recompute the composed transform unconditionally.

        Returns
        -------
        forward, inverse : torch.Tensor
            The composed transform and its inverse, shape (4, 4).

        Raises
        ------
        ConfigurationError
            If `pose` is None.
        """
        if pose is None:
            raise ConfigurationError("Pose transform is not set")
        with self._lock:
            self._pose = pose
            self._projection_angle = float(projection_angle)
            self._focal_distance = float(focal_distance)
            geometry = self._compute_locked()
        return geometry.forward, geometry.inverse

    def update(self):
        """Recompute only if the pose or parameters changed since the last computation."""
        if not self.is_stale():
            return self._geometry
        with self._lock:
            if self._pose is None:
                raise ConfigurationError("Pose transform is not set")
            if self.is_stale():
                return self._compute_locked()
            return self._geometry

    def initialize(self, pose=None, projection_angle=None, focal_distance=None):
        """Force a recomputation, caching the source position in the volume frame.

        Any argument given replaces the stored value first.

        Returns
        -------
        ProjectionGeometry
            The freshly computed geometry.

        Raises
        ------
        ConfigurationError
            If no pose is available.
        """
        with self._lock:
            if pose is not None:
                self._pose = pose
            if projection_angle is not None:
                self._projection_angle = float(projection_angle)
            if focal_distance is not None:
                self._focal_distance = float(focal_distance)
            if self._pose is None:
                raise ConfigurationError("Pose transform is not set")
            return self._compute_locked()
