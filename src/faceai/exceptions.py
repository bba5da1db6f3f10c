"""
Exception Definitions

Each layer raises its own error types; callers catch ``FaceAiError`` to
handle everything this package raises.
"""


class FaceAiError(Exception):
    """Base class for all faceai errors."""

    pass


class ConfigError(FaceAiError):
    """Raised when configuration is invalid or malformed."""

    pass


class ModelLoadingError(FaceAiError):
    """Raised when a model cannot be loaded (missing path, broken file)."""

    pass


class UnsupportedModelError(ModelLoadingError):
    """Raised when a model loads but its input/output layout is not supported."""

    pass


class InvalidInputError(FaceAiError, ValueError):
    """Raised when input data violates a precondition (size, length, shape)."""

    pass


class InferenceError(FaceAiError):
    """Raised when an inference operation fails."""

    pass


class AlignmentError(FaceAiError):
    """Raised when a face cannot be aligned, e.g. degenerate landmarks.

    Recoverable per face: callers may skip the face and continue.
    """

    pass
