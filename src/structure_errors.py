"""
Error taxonomy for structure normal estimation.

Window-level problems (DegenerateWindowError) are handled by the sweep,
region-level problems (InsufficientDataError, NoValidWindowError) by the
pipeline. Only BadConfigurationError and EstimationCancelled end a run.
"""


class StructureNormalError(Exception):
    """Base class for all structure normal estimation errors."""


class BadConfigurationError(StructureNormalError, ValueError):
    """Configuration is unusable; raised before any work starts."""


class InsufficientDataError(StructureNormalError):
    """A region has too few usable points or no 3D extent."""


class DegenerateWindowError(StructureNormalError):
    """A candidate window has a singular scatter matrix or undefined angles."""


class NoValidWindowError(StructureNormalError):
    """No window in a series could be scored (e.g. breaks split it too finely)."""


class EstimationCancelled(StructureNormalError):
    """The caller asked for the in-flight computation to stop."""
