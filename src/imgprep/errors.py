"""
Preprocessing Errors

Exceptions raised by the loader, the transforms and the pipeline composer.
Both concrete errors subclass ValueError so callers that already guard
image handling with ``except ValueError`` keep working.

Author: Matthew Hong
"""


class PreprocessingError(Exception):
    """Base class for every error raised by imgprep."""


class DecodeError(PreprocessingError, ValueError):
    """Raw input could not be turned into a 3-channel pixel buffer."""


class InvalidArgument(PreprocessingError, ValueError):
    """Stage or configuration parameters are out of range or malformed."""
