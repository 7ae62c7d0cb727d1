"""DRR rendering over a flat-panel detector.

This module drives a :class:`~siddon_drr.interpolator.SiddonJacobsRayCastInterpolator`
over every pixel of a detector placed in the imaging frame. Geometry is
initialized once per image, then rows of pixels are evaluated in parallel
on a thread pool; the traversal kernel releases the GIL, so the threads run
concurrently.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

import numpy as np
import torch

from .constants import _DTYPE
from .exceptions import ConfigurationError
from .utils import _chunk_bounds, _default_num_workers, _torch_dtype_for, _validate_num_workers

logger = logging.getLogger(__name__)


# ============================================================================
# Detector Geometry
# ============================================================================

class DetectorGeometry:
    """Flat detector perpendicular to the central ray.

    The detector lies in the plane ``z = -source_to_detector`` of the imaging
    frame (the source is at the origin, looking down the negative third axis,
    the second axis pointing up). Pixel ``(u, v)`` is centered at::

        x = (u - (n_u - 1) / 2) * du + offset_u
        y = (v - (n_v - 1) / 2) * dv + offset_v

    Parameters
    ----------
    size : tuple of int
        Number of pixels ``(n_u, n_v)``.
    spacing : tuple of float, optional
        Pixel spacing ``(du, dv)`` in mm (default: 1.0).
    source_to_detector : float, optional
        Distance from the source to the detector plane in mm (default: 1400.0).
    offset : tuple of float, optional
        In-plane shift of the detector center in mm (default: 0.0).

    Examples
    --------
    >>> det = DetectorGeometry((3, 2), spacing=(1.0, 1.0), source_to_detector=1400.0)
    >>> det.pixel_points()[0]
    array([   -1. ,    -0.5, -1400. ])
    """

    def __init__(self, size, spacing=(1.0, 1.0), source_to_detector=1400.0, offset=(0.0, 0.0)):
        if len(size) != 2 or any(int(n) != n or n < 1 for n in size):
            raise ConfigurationError(f"Detector size must be two positive integers, got {size}")
        if len(spacing) != 2 or any(not math.isfinite(s) or s <= 0 for s in spacing):
            raise ConfigurationError(f"Detector spacing must be two positive values, got {spacing}")
        if not math.isfinite(source_to_detector) or source_to_detector <= 0:
            raise ConfigurationError(f"source_to_detector must be positive, got {source_to_detector}")
        if len(offset) != 2 or any(not math.isfinite(o) for o in offset):
            raise ConfigurationError(f"Detector offset must be two finite values, got {offset}")

        self.size = (int(size[0]), int(size[1]))
        self.spacing = (float(spacing[0]), float(spacing[1]))
        self.source_to_detector = float(source_to_detector)
        self.offset = (float(offset[0]), float(offset[1]))

    def __repr__(self):
        return (
            f"DetectorGeometry(size={self.size}, spacing={self.spacing}, "
            f"source_to_detector={self.source_to_detector}, offset={self.offset})"
        )

    @property
    def shape(self):
        """Image shape ``(n_v, n_u)``, rows first."""
        return self.size[1], self.size[0]

    def pixel_point(self, u, v):
        """Imaging-frame position of pixel ``(u, v)``."""
        n_u, n_v = self.size
        du, dv = self.spacing
        return np.array([
            (u - (n_u - 1) * 0.5) * du + self.offset[0],
            (v - (n_v - 1) * 0.5) * dv + self.offset[1],
            -self.source_to_detector,
        ], dtype=_DTYPE)

    def pixel_points(self):
        """Positions of all pixels, shape ``(n_v * n_u, 3)``, row-major in ``(v, u)``."""
        n_u, n_v = self.size
        du, dv = self.spacing
        xs = (np.arange(n_u, dtype=_DTYPE) - (n_u - 1) * 0.5) * du + self.offset[0]
        ys = (np.arange(n_v, dtype=_DTYPE) - (n_v - 1) * 0.5) * dv + self.offset[1]
        yy, xx = np.meshgrid(ys, xs, indexing="ij")
        zz = np.full_like(xx, -self.source_to_detector)
        return np.ascontiguousarray(np.stack([xx.ravel(), yy.ravel(), zz.ravel()], axis=1))


# ============================================================================
# Rendering
# ============================================================================

def render_drr(interpolator, detector, num_workers=None):
    """Render one DRR image.

    Parameters
    ----------
    interpolator : SiddonJacobsRayCastInterpolator
        Interpolator with a volume and pose attached.
    detector : DetectorGeometry
        Detector to sample.
    num_workers : int, optional
        Number of worker threads (default: the interpolator's
        `num_workers`, or the CPU count if that is None).

    Returns
    -------
    torch.Tensor
        Image of shape ``(n_v, n_u)`` in the interpolator's output dtype.

    Raises
    ------
    ConfigurationError
        If the pose is missing or `num_workers` is not positive.
    NotInitializedError
        If no volume is attached.
    """
    if num_workers is None:
        num_workers = interpolator.num_workers
    if num_workers is None:
        num_workers = _default_num_workers()
    num_workers = _validate_num_workers(num_workers)

    # Exclusive phase: geometry is fixed for the whole image.
    interpolator.initialize_geometry()

    points = detector.pixel_points()
    n_v, n_u = detector.shape
    out = np.empty(points.shape[0], dtype=interpolator.output_dtype)
    bounds = _chunk_bounds(points.shape[0], num_workers)

    t0 = time.perf_counter()
    if len(bounds) == 1:
        out[:] = interpolator.sample_many(points)
    else:
        with ThreadPoolExecutor(max_workers=num_workers) as pool:
            futures = {
                pool.submit(interpolator.sample_many, points[start:stop]): (start, stop)
                for start, stop in bounds
            }
            for future in as_completed(futures):
                start, stop = futures[future]
                out[start:stop] = future.result()
    elapsed = time.perf_counter() - t0

    logger.info(
        "Rendered DRR %dx%d at angle %.4f rad with %d worker(s) in %.3fs",
        n_u, n_v, interpolator.projection_angle, min(num_workers, len(bounds)), elapsed,
    )
    return torch.from_numpy(out.reshape(n_v, n_u)).to(_torch_dtype_for(interpolator.output_dtype))


def render_drr_series(interpolator, detector, angles, num_workers=None):
    """Render one DRR per gantry angle.

    The interpolator's projection angle is restored afterwards.

    Parameters
    ----------
    angles : array-like or torch.Tensor
        Gantry angles in radians.

    Returns
    -------
    torch.Tensor
        Images of shape ``(n_angles, n_v, n_u)``.
    """
    if isinstance(angles, torch.Tensor):
        angles = angles.detach().cpu().tolist()
    angles = [float(a) for a in np.asarray(angles, dtype=_DTYPE).reshape(-1)]

    original_angle = interpolator.projection_angle
    images = []
    try:
        for angle in angles:
            interpolator.projection_angle = angle
            images.append(render_drr(interpolator, detector, num_workers=num_workers))
    finally:
        interpolator.projection_angle = original_angle
        if interpolator.pose is not None:
            interpolator.initialize_geometry()

    if not images:
        n_v, n_u = detector.shape
        return torch.zeros((0, n_v, n_u), dtype=_torch_dtype_for(interpolator.output_dtype))
    return torch.stack(images)
