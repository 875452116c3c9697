"""Error kinds raised by the detection cycle.

Each error also derives from the closest builtin exception so callers that
only know about ``ValueError`` / ``FileNotFoundError`` keep working.
"""


class BEVPerceptionError(Exception):
    """Base class of every error surfaced by a detection cycle."""


class CalibrationNotFoundError(BEVPerceptionError, FileNotFoundError):
    """The calibration source does not exist."""


class MalformedCalibrationError(BEVPerceptionError, ValueError):
    """A calibration field is missing, unparseable or non-numeric."""


class InvalidNormalizationParamsError(BEVPerceptionError, ValueError):
    """A normalization std or the scale factor is zero."""


class SingularTransformError(BEVPerceptionError, ArithmeticError):
    """A matrix that has to be inverted is (numerically) singular."""


class IncompleteFrameSetError(BEVPerceptionError, ValueError):
    """Fewer than the configured number of usable camera frames."""


class InferenceFailedError(BEVPerceptionError, RuntimeError):
    """The inference engine failed or returned malformed output."""
