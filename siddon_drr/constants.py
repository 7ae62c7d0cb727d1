"""Global constants and configuration for the siddon_drr package.

This module defines core constants used throughout the package, including
data types, ray-parameter sentinels, default projection parameters and the
Numba JIT decorator shared by the traversal kernels.
"""

import numpy as np
import torch
from numba import njit

# ---------------------------------------------------------------------------
# Data Types and Numerical Constants
# ---------------------------------------------------------------------------

_DTYPE = np.float64
"""Working data type for geometry and ray traversal (numpy.float64)."""

_TORCH_DTYPE = torch.float64
"""Torch counterpart of `_DTYPE`, used for homogeneous transform matrices."""

_OUTPUT_DTYPE = np.float32
"""Default output pixel type; accumulated sums are clamped to its range."""

_INF = _DTYPE(np.inf)
"""Floating-point infinity in working data type."""

# Sentinel ray-parameter bounds for an axis along which the ray does not move.
# They lie outside [0, 1] so that the axis never constrains entry or exit.
_ALPHA_MIN_SENTINEL = _DTYPE(-2.0)
_ALPHA_MAX_SENTINEL = _DTYPE(2.0)

# Crossing step for a zero direction component; never selected as the minimum.
_ALPHA_STEP_SENTINEL = _INF

# ---------------------------------------------------------------------------
# Default Projection Parameters
# ---------------------------------------------------------------------------

_DEFAULT_FOCAL_DISTANCE = 1000.0
"""Focal point (X-ray source) to isocenter distance, in mm."""

_DEFAULT_PROJECTION_ANGLE = 0.0
"""Gantry rotation angle in radians."""

_DEFAULT_THRESHOLD = 0.0
"""Intensity threshold; voxels at or below it do not contribute."""

_CAMERA_ROTATION_X = -0.5 * np.pi
"""Fixed camera rotation about the first axis (-90 degrees)."""

_SOURCE_POINT = (0.0, 0.0, 0.0)
"""X-ray source in the imaging frame, before geometry composition."""

# ---------------------------------------------------------------------------
# Numba JIT Decorators
# ---------------------------------------------------------------------------

# nogil lets per-pixel evaluations run in parallel from a thread pool.
# fastmath stays off: the kernels compare against infinite sentinels.
_NJIT_DECORATOR = njit(cache=True, nogil=True)
"""Numba CPU JIT decorator for the ray traversal kernels."""
