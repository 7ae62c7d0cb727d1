# siddon_drr/__init__.py
"""siddon_drr - Siddon-Jacobs ray casting for digitally reconstructed radiographs.

Computes DRR pixel values from a 3D volume by casting divergent rays from an
X-ray source through the voxel grid with the incremental Siddon-Jacobs
traversal, for use inside intensity-based 2D/3D image registration.
"""

from .exceptions import (
    DRRError,
    ConfigurationError,
    NotInitializedError,
)

from .transforms import (
    Pose,
    euler_zyx_matrix,
    rigid_matrix,
    invert_rigid,
    transform_point,
    transform_points,
)

from .volume import Volume

from .geometry import (
    GeometryComposer,
    ProjectionGeometry,
    compose_projection_transform,
)

from .interpolator import (
    SiddonJacobsRayCastInterpolator,
    RayAccumulator,
)

from .projectors import (
    DetectorGeometry,
    render_drr,
    render_drr_series,
)

from .config import ProjectionSettings

__version__ = '0.1.0'

__all__ = [
    'DRRError',
    'ConfigurationError',
    'NotInitializedError',
    'Pose',
    'euler_zyx_matrix',
    'rigid_matrix',
    'invert_rigid',
    'transform_point',
    'transform_points',
    'Volume',
    'GeometryComposer',
    'ProjectionGeometry',
    'compose_projection_transform',
    'SiddonJacobsRayCastInterpolator',
    'RayAccumulator',
    'DetectorGeometry',
    'render_drr',
    'render_drr_series',
    'ProjectionSettings',
]
