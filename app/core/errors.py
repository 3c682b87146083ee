"""
Domain error taxonomy.

Client-facing errors carry the HTTP status the exception handler in
`app.main` maps them to. Upstream errors never leave the detection layer:
they are recovered into neutral scores or a skipped corroboration step.
"""


class DetectorError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(DetectorError):
    status_code = 400


class TooManyItems(DetectorError):
    status_code = 400


class RateLimited(DetectorError):
    status_code = 429


class BatchTimeout(DetectorError):
    status_code = 504


class UpstreamUnavailable(DetectorError):
    status_code = 502


class KeyPoolExhausted(UpstreamUnavailable):
    """Every credential in a rotation failed."""
