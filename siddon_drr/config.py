"""Projection settings.

A thin dataclass bundling the scalar parameters of a DRR interpolator, so
that they can be built from a plain mapping (e.g. parsed from a
registration configuration) and validated in one place.
"""

import logging
import math
import typing
from dataclasses import dataclass, fields, replace

import numpy as np

from .constants import (
    _DEFAULT_FOCAL_DISTANCE,
    _DEFAULT_PROJECTION_ANGLE,
    _DEFAULT_THRESHOLD,
    _OUTPUT_DTYPE,
)
from .exceptions import ConfigurationError
from .utils import _resolve_output_dtype, _validate_num_workers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectionSettings:
    """Scalar parameters of the ray-cast interpolator.

    Attributes
    ----------
    focal_distance : float
        Source to isocenter distance in mm (default: 1000.0).
    projection_angle : float
        Gantry rotation angle in radians (default: 0.0).
    threshold : float
        Intensities at or below it are ignored (default: 0.0).
    output_dtype : numpy.dtype
        Pixel type the accumulated sum is clamped to. Strings, NumPy and
        torch dtypes are accepted and normalized (default: float32).
    physical_units : bool
        Scale results by the ray length, giving mm-weighted integrals
        instead of normalized ray-parameter weights (default: False).
    num_workers : int or None
        Thread count used when rendering; None means CPU count.

    Raises
    ------
    ConfigurationError
        If a number is not finite, the dtype is unsupported or `num_workers`
        is not a positive integer.

    Examples
    --------
    >>> ProjectionSettings.from_mapping({"threshold": 5, "output_dtype": "int16"}).output_dtype
    dtype('int16')
    """

    focal_distance: float = _DEFAULT_FOCAL_DISTANCE
    projection_angle: float = _DEFAULT_PROJECTION_ANGLE
    threshold: float = _DEFAULT_THRESHOLD
    output_dtype: typing.Any = _OUTPUT_DTYPE
    physical_units: bool = False
    num_workers: typing.Optional[int] = None

    def __post_init__(self):
        for name in ("focal_distance", "projection_angle", "threshold"):
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
            if not math.isfinite(value):
                raise ConfigurationError(f"{name} must be finite, got {value}")
            object.__setattr__(self, name, value)

        object.__setattr__(self, "output_dtype", _resolve_output_dtype(self.output_dtype))
        object.__setattr__(self, "physical_units", bool(self.physical_units))
        object.__setattr__(self, "num_workers", _validate_num_workers(self.num_workers))

    @classmethod
    def from_mapping(cls, mapping):
        """Build settings from a mapping, ignoring unknown keys with a warning."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            logger.warning("Ignoring unknown projection settings: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in mapping.items() if k in known})

    def with_angle(self, projection_angle):
        return replace(self, projection_angle=projection_angle)

    def to_dict(self):
        """Plain-value dict accepted by :meth:`from_mapping`; the dtype is given by name."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["output_dtype"] = np.dtype(self.output_dtype).name
        return data
