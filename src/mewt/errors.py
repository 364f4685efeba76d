"""Exception types raised by the mewt engine."""


class MewtError(Exception):
    """Base class for all mewt errors."""


class InvalidInputError(MewtError, ValueError):
    """Raised for empty, silent, or malformed input.

    Sample buffers that are empty, not one-dimensional, contain non-finite
    values, or are entirely zero are rejected with this error. Detections
    with a non-string label or a confidence outside [0, 1] are rejected
    the same way.
    """


class ExternalCallError(MewtError):
    """Raised by analysis clients when the deep-analysis service fails.

    Covers transport errors, non-2xx responses, undecodable bodies, and
    responses that report ``success: false``.
    """

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


__all__ = ["MewtError", "InvalidInputError", "ExternalCallError"]
