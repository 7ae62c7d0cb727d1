"""Utility helpers for the siddon_drr package.

This module provides dtype bridging between NumPy and PyTorch, output range
clamping, point-array validation and work partitioning for thread pools.
"""

import math
import os

import numpy as np
import torch

from .constants import _DTYPE
from .exceptions import ConfigurationError


# ============================================================================
# NumPy / PyTorch dtype Bridge
# ============================================================================

_TORCH_TO_NP = {
    torch.float16: np.float16,
    torch.float32: np.float32,
    torch.float64: np.float64,
    torch.uint8: np.uint8,
    torch.int8: np.int8,
    torch.int16: np.int16,
    torch.int32: np.int32,
}

_NP_TO_TORCH = {np.dtype(v): k for k, v in _TORCH_TO_NP.items()}


def _resolve_output_dtype(dtype):
    """Normalize an output pixel type to a NumPy dtype.

    Parameters
    ----------
    dtype : numpy.dtype, type, str or torch.dtype
        Requested output type, e.g. ``np.float32``, ``"int16"`` or
        ``torch.float32``.

    Returns
    -------
    numpy.dtype
        Equivalent NumPy dtype.

    Raises
    ------
    ConfigurationError
        If the type is not a real numeric type supported by both libraries.

    Examples
    --------
    >>> _resolve_output_dtype(torch.float32)
    dtype('float32')
    """
    if isinstance(dtype, torch.dtype):
        if dtype not in _TORCH_TO_NP:
            raise ConfigurationError(f"Unsupported output dtype: {dtype}")
        return np.dtype(_TORCH_TO_NP[dtype])
    try:
        resolved = np.dtype(dtype)
    except TypeError as exc:
        raise ConfigurationError(f"Unsupported output dtype: {dtype!r}") from exc
    if resolved not in _NP_TO_TORCH:
        raise ConfigurationError(f"Unsupported output dtype: {resolved}")
    return resolved


def _torch_dtype_for(dtype):
    """Torch dtype matching a NumPy output dtype."""
    return _NP_TO_TORCH[_resolve_output_dtype(dtype)]


# ============================================================================
# Output Range Clamping
# ============================================================================

def _output_range(dtype):
    """Lowest and highest value representable by `dtype`.

    For floating types the lowest value is ``-max``, for unsigned integers 0.
    """
    dtype = _resolve_output_dtype(dtype)
    if np.issubdtype(dtype, np.floating):
        info = np.finfo(dtype)
    else:
        info = np.iinfo(dtype)
    return float(info.min), float(info.max)


def _clamp_to_dtype(values, dtype):
    """Clamp `values` to the range of `dtype` and cast.

    Parameters
    ----------
    values : float or numpy.ndarray
        Accumulated path integrals.
    dtype : numpy.dtype
        Output pixel type.

    Returns
    -------
    numpy scalar or numpy.ndarray
        Clamped values of type `dtype`. Integer types are rounded to nearest,
        NaN becomes 0 and infinities saturate.
    """
    dtype = _resolve_output_dtype(dtype)
    lo, hi = _output_range(dtype)
    values = np.where(np.isnan(values), 0.0, values)
    clipped = np.clip(values, lo, hi)
    if not np.issubdtype(dtype, np.floating):
        clipped = np.rint(clipped)
    if np.ndim(clipped) == 0:
        return dtype.type(clipped)
    return clipped.astype(dtype)


# ============================================================================
# Input Validation
# ============================================================================

def _validate_point(point):
    """Return `point` as a float64 array of shape (3,)."""
    arr = np.asarray(point, dtype=_DTYPE).reshape(-1)
    if arr.size != 3:
        raise ConfigurationError(f"Point must have 3 components, got {arr.size}")
    return arr


def _validate_points(points):
    """Return `points` as a C-contiguous float64 array of shape (n, 3)."""
    if isinstance(points, torch.Tensor):
        points = points.detach().to("cpu", dtype=torch.float64).numpy()
    arr = np.ascontiguousarray(points, dtype=_DTYPE)
    if arr.ndim == 1 and arr.size == 3:
        arr = arr.reshape(1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ConfigurationError(f"Points must have shape (n, 3), got {arr.shape}")
    return arr


# ============================================================================
# Work Partitioning
# ============================================================================

def _default_num_workers():
    return os.cpu_count() or 1


def _validate_num_workers(num_workers):
    """Return `num_workers` as an int, passing None through.

    Raises
    ------
    ConfigurationError
        If `num_workers` is not a positive integer.
    """
    if num_workers is None:
        return None
    valid = isinstance(num_workers, (int, np.integer)) and not isinstance(num_workers, bool)
    if not valid or num_workers < 1:
        raise ConfigurationError(f"num_workers must be a positive integer, got {num_workers!r}")
    return int(num_workers)


def _chunk_bounds(n_items, n_chunks):
    """Split ``range(n_items)`` into at most `n_chunks` contiguous slices.

    Examples
    --------
    >>> _chunk_bounds(10, 3)
    [(0, 4), (4, 8), (8, 10)]
    """
    if n_items <= 0:
        return []
    n_chunks = max(1, min(n_chunks, n_items))
    size = math.ceil(n_items / n_chunks)
    return [(start, min(start + size, n_items)) for start in range(0, n_items, size)]
