"""Rigid transforms and the volume pose.

This module provides the homogeneous-matrix helpers used to compose the
projection geometry, and the :class:`Pose` describing where the volume sits
in world space. Matrices are 4x4 float64 torch tensors acting on column
vectors, so ``A @ B`` applies ``B`` first.
"""

import itertools
import math
import logging

import numpy as np
import torch

from .constants import _DTYPE, _TORCH_DTYPE
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Process-wide modification clock shared by every Pose, so stamps taken from
# different objects stay comparable.
_MODIFIED_CLOCK = itertools.count(1)


def _next_stamp():
    return next(_MODIFIED_CLOCK)


# ============================================================================
# Matrix Construction
# ============================================================================

def _as_vector3(value, name):
    """Convert `value` to a float64 torch vector of length 3."""
    vec = torch.as_tensor(np.asarray(value, dtype=_DTYPE), dtype=_TORCH_DTYPE).reshape(-1)
    if vec.numel() != 3:
        raise ConfigurationError(f"{name} must have 3 components, got {vec.numel()}")
    if not bool(torch.isfinite(vec).all()):
        raise ConfigurationError(f"{name} must be finite, got {vec.tolist()}")
    return vec


def euler_zyx_matrix(angle_x, angle_y, angle_z):
    """Build the 3x3 rotation ``Rz @ Ry @ Rx`` (x-rotation applied first).

    Parameters
    ----------
    angle_x, angle_y, angle_z : float
        Rotation angles about the first, second and third axis, in radians.

    Returns
    -------
    torch.Tensor
        Rotation matrix of shape (3, 3), dtype float64.

    Examples
    --------
    >>> R = euler_zyx_matrix(0.0, 0.0, math.pi / 2)
    >>> R @ torch.tensor([1.0, 0.0, 0.0], dtype=torch.float64)
    tensor([6.1232e-17, 1.0000e+00, 0.0000e+00], dtype=torch.float64)
    """
    cx, sx = math.cos(angle_x), math.sin(angle_x)
    cy, sy = math.cos(angle_y), math.sin(angle_y)
    cz, sz = math.cos(angle_z), math.sin(angle_z)

    rot_x = torch.tensor([[1.0, 0.0, 0.0], [0.0, cx, -sx], [0.0, sx, cx]], dtype=_TORCH_DTYPE)
    rot_y = torch.tensor([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]], dtype=_TORCH_DTYPE)
    rot_z = torch.tensor([[cz, -sz, 0.0], [sz, cz, 0.0], [0.0, 0.0, 1.0]], dtype=_TORCH_DTYPE)
    return rot_z @ rot_y @ rot_x


def rigid_matrix(rotation, center=(0.0, 0.0, 0.0), translation=(0.0, 0.0, 0.0)):
    """Build the homogeneous matrix of ``y = R (x - c) + c + t``.

    Parameters
    ----------
    rotation : torch.Tensor
        Rotation matrix of shape (3, 3).
    center : array-like, optional
        Center of rotation (default: origin).
    translation : array-like, optional
        Translation applied after the rotation (default: zero).

    Returns
    -------
    torch.Tensor
        Homogeneous matrix of shape (4, 4), dtype float64.
    """
    rotation = torch.as_tensor(rotation, dtype=_TORCH_DTYPE)
    center = _as_vector3(center, "center")
    translation = _as_vector3(translation, "translation")

    matrix = torch.eye(4, dtype=_TORCH_DTYPE)
    matrix[:3, :3] = rotation
    matrix[:3, 3] = center + translation - rotation @ center
    return matrix


def translation_matrix(offset):
    """Homogeneous matrix translating points by `offset`."""
    matrix = torch.eye(4, dtype=_TORCH_DTYPE)
    matrix[:3, 3] = _as_vector3(offset, "offset")
    return matrix


def invert_rigid(matrix):
    """Invert a rigid homogeneous matrix using the transposed rotation.

    Parameters
    ----------
    matrix : torch.Tensor
        Rigid transform of shape (4, 4).

    Returns
    -------
    torch.Tensor
        Inverse transform of shape (4, 4).
    """
    rot_t = matrix[:3, :3].transpose(0, 1)
    inverse = torch.eye(4, dtype=_TORCH_DTYPE)
    inverse[:3, :3] = rot_t
    inverse[:3, 3] = -(rot_t @ matrix[:3, 3])
    return inverse


def transform_point(matrix, point):
    """Apply a homogeneous matrix to a single 3D point.

    Returns
    -------
    numpy.ndarray
        Transformed point of shape (3,), dtype float64.
    """
    p = _as_vector3(point, "point")
    out = matrix[:3, :3] @ p + matrix[:3, 3]
    return out.numpy()


def transform_points(matrix, points):
    """Apply a homogeneous matrix to an (n, 3) array of points.

    Returns
    -------
    numpy.ndarray
        Transformed points of shape (n, 3), dtype float64.
    """
    pts = torch.as_tensor(np.asarray(points, dtype=_DTYPE), dtype=_TORCH_DTYPE)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ConfigurationError(f"points must have shape (n, 3), got {tuple(pts.shape)}")
    out = pts @ matrix[:3, :3].transpose(0, 1) + matrix[:3, 3]
    return out.numpy()


# ============================================================================
# Volume Pose
# ============================================================================

class Pose:
    """Rigid placement of the volume in world space.

    The pose is an Euler (ZYX order) rotation about `center` followed by a
    translation. It is owned and mutated by the caller, typically a
    registration optimizer; every mutation advances :attr:`mtime` so that
    cached geometry derived from it can tell when it is out of date.

    Parameters
    ----------
    angles : array-like, optional
        Rotation angles (x, y, z) in radians (default: zero).
    translation : array-like, optional
        Translation in mm (default: zero).
    center : array-like, optional
        Center of rotation in mm; also used as the isocenter of the
        projection geometry (default: origin).

    Examples
    --------
    >>> pose = Pose(center=(64.0, 64.0, 40.0))
    >>> stamp = pose.mtime
    >>> pose.set_parameters([0.0, 0.0, 0.1, 2.0, 0.0, 0.0])
    >>> pose.mtime > stamp
    True
    """

    def __init__(self, angles=(0.0, 0.0, 0.0), translation=(0.0, 0.0, 0.0), center=(0.0, 0.0, 0.0)):
        self._angles = _as_vector3(angles, "angles")
        self._translation = _as_vector3(translation, "translation")
        self._center = _as_vector3(center, "center")
        self._mtime = _next_stamp()

    def __repr__(self):
        return (
            f"Pose(angles={self._angles.tolist()}, translation={self._translation.tolist()}, "
            f"center={self._center.tolist()}, mtime={self._mtime})"
        )

    def modified(self):
        """Mark the pose as changed."""
        self._mtime = _next_stamp()

    @property
    def mtime(self):
        """Monotonically increasing modification stamp."""
        return self._mtime

    @property
    def angles(self):
        return self._angles.clone()

    @angles.setter
    def angles(self, value):
        self._angles = _as_vector3(value, "angles")
        self.modified()

    @property
    def translation(self):
        return self._translation.clone()

    @translation.setter
    def translation(self, value):
        self._translation = _as_vector3(value, "translation")
        self.modified()

    @property
    def center(self):
        return self._center.clone()

    @center.setter
    def center(self, value):
        self._center = _as_vector3(value, "center")
        self.modified()

    def set_identity(self):
        """Reset rotation and translation, keeping the center."""
        self._angles = torch.zeros(3, dtype=_TORCH_DTYPE)
        self._translation = torch.zeros(3, dtype=_TORCH_DTYPE)
        self.modified()

    def get_parameters(self):
        """Return the optimizer parameter vector ``(ax, ay, az, tx, ty, tz)``."""
        return torch.cat([self._angles, self._translation]).numpy()

    def set_parameters(self, parameters):
        """Set rotation and translation from a 6-element parameter vector.

        Raises
        ------
        ConfigurationError
            If `parameters` does not have 6 finite components.
        """
        params = np.asarray(parameters, dtype=_DTYPE).reshape(-1)
        if params.size != 6:
            raise ConfigurationError(f"Pose parameters must have 6 components, got {params.size}")
        self._angles = _as_vector3(params[:3], "angles")
        self._translation = _as_vector3(params[3:], "translation")
        self.modified()
        logger.debug("Pose parameters set to %s (mtime=%d)", params.tolist(), self._mtime)

    def rotation_matrix(self):
        return euler_zyx_matrix(*self._angles.tolist())

    def matrix(self):
        """Homogeneous matrix mapping volume points to world points."""
        return rigid_matrix(self.rotation_matrix(), self._center, self._translation)

    def inverse_matrix(self):
        return invert_rigid(self.matrix())

    def transform_point(self, point):
        return transform_point(self.matrix(), point)
