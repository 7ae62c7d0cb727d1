"""Exception types raised by siddon_drr.

All failures are precondition violations detected when geometry is
configured or initialized. A ray evaluation on an initialized interpolator
never raises.
"""


class DRRError(Exception):
    """Base class for all siddon_drr errors."""


class ConfigurationError(DRRError):
    """Raised for a missing pose or volume, or an invalid configuration value."""


class NotInitializedError(ConfigurationError):
    """Raised when a ray is sampled before geometry and volume are available."""
