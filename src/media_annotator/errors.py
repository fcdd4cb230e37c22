"""Error taxonomy for the annotation pipeline.

Everything except ConfigurationError is local to a single media file: the job or the worker
loop converts it into a failed result and the batch carries on.
"""


class AnnotatorError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(AnnotatorError):
    """Required configuration is missing. Fatal at startup."""


class ExtractionError(AnnotatorError):
    """Frame sampling failed (decoder exited non-zero, source missing, tool not installed)."""


class ImagePreparationError(ExtractionError):
    """A still image could not be decoded into a payload for the oracle."""


class OracleError(AnnotatorError):
    """The annotation request failed or returned unusable content."""


class EmptyDescriptionError(OracleError):
    """The oracle answered, but with no usable text."""


class StoreError(AnnotatorError):
    """Reading or writing metadata failed (unsupported format, permissions, corrupt file)."""
