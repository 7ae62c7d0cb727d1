"""Voxel volume sampled by the ray caster.

The volume's native frame has its corner at the origin: voxel ``(i, j, k)``
covers ``[i*sx, (i+1)*sx) x [j*sy, (j+1)*sy) x [k*sz, (k+1)*sz)``. The
`origin` attribute is only used to map continuous indices to physical points.
"""

import logging

import numpy as np
import torch

from .constants import _DTYPE
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Volume:
    """Immutable 3D grid of scalar intensities.

    Parameters
    ----------
    data : array-like
        Intensities of shape (nx, ny, nz), indexed ``data[i, j, k]``.
    spacing : array-like, optional
        Voxel spacing along each axis in mm (default: 1.0 isotropic).
    origin : array-like, optional
        Physical position of voxel index (0, 0, 0) (default: origin).

    Raises
    ------
    ConfigurationError
        If `data` is not 3D, has an empty axis, or `spacing` is not three
        positive finite values.

    Examples
    --------
    >>> vol = Volume(np.ones((10, 10, 10)), spacing=(1.0, 1.0, 2.0))
    >>> vol.extent
    array([10., 10., 20.])
    """

    def __init__(self, data, spacing=(1.0, 1.0, 1.0), origin=(0.0, 0.0, 0.0)):
        array = np.array(data, dtype=_DTYPE, copy=True, order="C")
        if array.ndim != 3:
            raise ConfigurationError(f"Volume data must be 3D, got {array.ndim}D")
        if min(array.shape) < 1:
            raise ConfigurationError(f"Volume data must be non-empty, got shape {array.shape}")

        spacing = np.asarray(spacing, dtype=_DTYPE).reshape(-1)
        if spacing.size == 1:
            spacing = np.repeat(spacing, 3)
        if spacing.size != 3 or not np.all(np.isfinite(spacing)) or np.any(spacing <= 0):
            raise ConfigurationError(f"Voxel spacing must be 3 positive values, got {spacing.tolist()}")

        origin = np.asarray(origin, dtype=_DTYPE).reshape(-1)
        if origin.size != 3 or not np.all(np.isfinite(origin)):
            raise ConfigurationError(f"Volume origin must be 3 finite values, got {origin.tolist()}")

        # Read-only during traversal; concurrent rays share this buffer.
        array.setflags(write=False)
        spacing.setflags(write=False)
        origin.setflags(write=False)
        self._data = array
        self._spacing = spacing
        self._origin = origin
        logger.debug("Volume created: size=%s spacing=%s", array.shape, spacing.tolist())

    @classmethod
    def from_torch(cls, tensor, spacing=(1.0, 1.0, 1.0), origin=(0.0, 0.0, 0.0)):
        """Create a volume from a torch tensor of shape (nx, ny, nz)."""
        if not isinstance(tensor, torch.Tensor):
            raise ConfigurationError(f"Expected torch.Tensor, got {type(tensor).__name__}")
        return cls(tensor.detach().to("cpu", dtype=torch.float64).numpy(), spacing, origin)

    def __repr__(self):
        return f"Volume(size={self.size}, spacing={self._spacing.tolist()}, origin={self._origin.tolist()})"

    @property
    def data(self):
        return self._data

    @property
    def size(self):
        """Voxel counts ``(nx, ny, nz)``."""
        return tuple(int(n) for n in self._data.shape)

    @property
    def spacing(self):
        return self._spacing

    @property
    def origin(self):
        return self._origin

    @property
    def extent(self):
        """Physical extent ``size * spacing`` along each axis."""
        return np.asarray(self.size, dtype=_DTYPE) * self._spacing

    @property
    def center(self):
        """Geometric center in the native frame."""
        return 0.5 * self.extent

    def is_valid_index(self, i, j, k):
        nx, ny, nz = self._data.shape
        return 0 <= i < nx and 0 <= j < ny and 0 <= k < nz

    def value_at(self, i, j, k):
        """Intensity of voxel ``(i, j, k)``; the index must be valid."""
        if not self.is_valid_index(i, j, k):
            raise IndexError(f"Voxel index {(i, j, k)} outside volume of size {self.size}")
        return float(self._data[i, j, k])

    def continuous_index_to_point(self, index):
        """Map a continuous voxel index to a physical point."""
        index = np.asarray(index, dtype=_DTYPE).reshape(-1)
        if index.size != 3:
            raise ConfigurationError(f"Continuous index must have 3 components, got {index.size}")
        return self._origin + index * self._spacing
