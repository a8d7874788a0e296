"""Exceptions raised by the GRP2 decoders.

Every error derives from ValueError so callers written against plain
``ValueError`` keep working.
"""


class GrpError(ValueError):
    """Base class for all decode failures."""


class FormatError(GrpError):
    """Wrong magic, header too short or an unrecognized format tag."""


class BoundsError(GrpError):
    """A fixed-offset read runs past the end of the buffer."""


class EncodingError(GrpError):
    """Bytes where a string was expected are not valid text."""


class CompressionError(GrpError):
    """Corrupt or truncated compressed frame."""


class NotFoundError(GrpError):
    """A scan completed without finding anything."""


class InferenceError(GrpError):
    """No texture layout reconciles with the actual data length."""


class SizeError(GrpError):
    """Declared or inferred size exceeds the available bytes."""
