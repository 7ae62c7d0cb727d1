"""Siddon-Jacobs ray-cast interpolator.

Evaluating the interpolator at a point of the imaging frame casts a ray from
the X-ray source to that point through the volume and returns the
thresholded path integral of voxel intensities. It is used as the
per-pixel sampler of a DRR generator inside intensity-based 2D/3D
registration.

Usage is two-phase:

1. :meth:`SiddonJacobsRayCastInterpolator.initialize_geometry` composes the
   projection geometry. It mutates shared state and must be called once,
   before fanning out, whenever the pose, angle or focal distance change.
2. :meth:`SiddonJacobsRayCastInterpolator.sample` is read-only and may be
   called concurrently from any number of threads.
"""

import logging

import numpy as np

from .constants import (
    _DEFAULT_FOCAL_DISTANCE,
    _DEFAULT_PROJECTION_ANGLE,
    _DEFAULT_THRESHOLD,
    _OUTPUT_DTYPE,
)
from .exceptions import ConfigurationError, NotInitializedError
from .geometry import GeometryComposer
from .kernels import _siddon_jacobs_kernel, _siddon_jacobs_batch_kernel
from .utils import (
    _clamp_to_dtype,
    _resolve_output_dtype,
    _validate_point,
    _validate_points,
    _validate_num_workers,
)
from .volume import Volume

logger = logging.getLogger(__name__)


class SiddonJacobsRayCastInterpolator:
    """Divergent-beam ray caster over a voxel volume.

    Parameters
    ----------
    volume : Volume, optional
        Volume to project. Required before sampling.
    pose : Pose, optional
        Rigid pose of the volume. Required before initialization.
    projection_angle : float, optional
        Gantry rotation angle in radians (default: 0.0).
    focal_distance : float, optional
        Source to isocenter distance in mm (default: 1000.0).
    threshold : float, optional
        Intensities at or below it do not contribute (default: 0.0).
    output_dtype : numpy.dtype or torch.dtype, optional
        Pixel type results are clamped to (default: float32).
    physical_units : bool, optional
        If True, weight each voxel by the length of ray inside it in mm
        instead of in normalized ray-parameter units (default: False).
    num_workers : int, optional
        Thread count used by :func:`~siddon_drr.projectors.render_drr` when
        none is passed (default: CPU count).

    Notes
    -----
    The ray parameter ``alpha`` runs from 0 at the source to 1 at the sampled
    point, so by default a voxel crossed over a length ``l`` contributes
    ``l / |target - source| * (value - threshold)``.

    Examples
    --------
    >>> vol = Volume(np.full((10, 10, 10), 100.0))
    >>> interp = SiddonJacobsRayCastInterpolator(vol, Pose(center=vol.center), physical_units=True)
    >>> interp.initialize_geometry()
    >>> float(interp.sample((0.0, 0.0, -1400.0)))
    1000.0
    """

    def __init__(self, volume=None, pose=None, projection_angle=_DEFAULT_PROJECTION_ANGLE,
                 focal_distance=_DEFAULT_FOCAL_DISTANCE, threshold=_DEFAULT_THRESHOLD,
                 output_dtype=_OUTPUT_DTYPE, physical_units=False, num_workers=None):
        if volume is not None and not isinstance(volume, Volume):
            raise ConfigurationError(f"Expected Volume, got {type(volume).__name__}")
        self._volume = volume
        self._composer = GeometryComposer(pose, projection_angle, focal_distance)
        self._threshold = float(threshold)
        self._output_dtype = _resolve_output_dtype(output_dtype)
        self._physical_units = bool(physical_units)
        self._num_workers = _validate_num_workers(num_workers)

    @classmethod
    def from_settings(cls, volume, pose, settings):
        """Create an interpolator from :class:`~siddon_drr.config.ProjectionSettings`."""
        return cls(
            volume=volume,
            pose=pose,
            projection_angle=settings.projection_angle,
            focal_distance=settings.focal_distance,
            threshold=settings.threshold,
            output_dtype=settings.output_dtype,
            physical_units=settings.physical_units,
            num_workers=settings.num_workers,
        )

    def __repr__(self):
        geometry = self._composer.geometry
        stamp = None if geometry is None else geometry.pose_mtime
        return (
            f"{type(self).__name__}(threshold={self._threshold}, "
            f"projection_angle={self.projection_angle}, focal_distance={self.focal_distance}, "
            f"output_dtype={self._output_dtype.name}, physical_units={self._physical_units}, "
            f"volume={self._volume!r}, pose_mtime={stamp})"
        )

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def volume(self):
        return self._volume

    @volume.setter
    def volume(self, volume):
        if volume is not None and not isinstance(volume, Volume):
            raise ConfigurationError(f"Expected Volume, got {type(volume).__name__}")
        self._volume = volume

    @property
    def pose(self):
        return self._composer.pose

    @pose.setter
    def pose(self, pose):
        self._composer.pose = pose

    @property
    def projection_angle(self):
        return self._composer.projection_angle

    @projection_angle.setter
    def projection_angle(self, value):
        self._composer.projection_angle = value

    @property
    def focal_distance(self):
        return self._composer.focal_distance

    @focal_distance.setter
    def focal_distance(self, value):
        self._composer.focal_distance = value

    @property
    def threshold(self):
        return self._threshold

    @threshold.setter
    def threshold(self, value):
        self._threshold = float(value)

    @property
    def output_dtype(self):
        return self._output_dtype

    @output_dtype.setter
    def output_dtype(self, value):
        self._output_dtype = _resolve_output_dtype(value)

    @property
    def physical_units(self):
        return self._physical_units

    @property
    def num_workers(self):
        """Default thread count for rendering; None means CPU count."""
        return self._num_workers

    @num_workers.setter
    def num_workers(self, value):
        self._num_workers = _validate_num_workers(value)

    @property
    def geometry(self):
        """Current :class:`~siddon_drr.geometry.ProjectionGeometry` or None."""
        return self._composer.geometry

    @property
    def composer(self):
        return self._composer

    # ------------------------------------------------------------------
    # Geometry phase
    # ------------------------------------------------------------------

    def initialize_geometry(self, pose=None, projection_angle=None, focal_distance=None):
        """Compose the projection geometry; call before any batch of samples.

        Arguments that are given replace the stored values first.

        Raises
        ------
        ConfigurationError
            If no pose is set.
        """
        geometry = self._composer.initialize(pose, projection_angle, focal_distance)
        logger.debug("Interpolator geometry initialized (pose_mtime=%d)", geometry.pose_mtime)

    def initialize(self):
        """Recompose the geometry from the stored pose and parameters."""
        self.initialize_geometry()

    def geometry_is_stale(self):
        """True if the pose or parameters changed since the last initialization."""
        return self._composer.is_stale()

    # ------------------------------------------------------------------
    # Sampling phase
    # ------------------------------------------------------------------

    def _require_ready(self):
        geometry = self._composer.geometry
        if geometry is None:
            raise NotInitializedError("Projection geometry is not initialized; call initialize_geometry() first")
        if self._volume is None:
            raise NotInitializedError("No volume attached to the interpolator")
        return geometry, self._volume

    def sample(self, target_point_world):
        """Path integral along the ray from the source to `target_point_world`.

        Parameters
        ----------
        target_point_world : array-like
            Point of the imaging frame, shape (3,).

        Returns
        -------
        numpy scalar
            Thresholded path integral clamped to the output dtype range.
            Zero if the ray misses the volume.

        Raises
        ------
        NotInitializedError
            If the geometry has not been initialized or no volume is attached.
        """
        geometry, volume = self._require_ready()
        target = geometry.to_volume_frame(_validate_point(target_point_world))
        source = geometry.source_world

        value = _siddon_jacobs_kernel(volume.data, volume.spacing, source, target, self._threshold)
        if self._physical_units:
            with np.errstate(over="ignore", invalid="ignore"):
                value *= float(np.linalg.norm(target - source))
        return _clamp_to_dtype(value, self._output_dtype)

    def sample_many(self, target_points_world):
        """Vectorized :meth:`sample` over an (n, 3) array of points.

        Returns
        -------
        numpy.ndarray
            Values of shape (n,) in the output dtype.
        """
        geometry, volume = self._require_ready()
        points = _validate_points(target_points_world)
        targets = np.ascontiguousarray(geometry.to_volume_frame_batch(points))
        source = np.ascontiguousarray(geometry.source_world)

        out = np.zeros(targets.shape[0], dtype=np.float64)
        _siddon_jacobs_batch_kernel(volume.data, volume.spacing, source, targets, self._threshold, out)
        if self._physical_units:
            with np.errstate(over="ignore", invalid="ignore"):
                out *= np.linalg.norm(targets - source, axis=1)
        return _clamp_to_dtype(out, self._output_dtype)

    def evaluate(self, point):
        return self.sample(point)

    def evaluate_at_continuous_index(self, index):
        """Sample at the physical point of a continuous index of the volume."""
        _, volume = self._require_ready()
        return self.sample(volume.continuous_index_to_point(index))

    def is_inside_buffer(self, *args):
        """Every point can be ray cast, so no point is outside the buffer."""
        return True

    __call__ = sample


RayAccumulator = SiddonJacobsRayCastInterpolator
