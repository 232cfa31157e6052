from __future__ import annotations

from typing import Optional


class TryOnError(Exception):
    """Terminal failure of a try-on request.

    Each subclass fixes the HTTP status and the short ``info`` string shown
    to the user; ``seed`` is filled in by the route once it is known.
    """

    status_code = 500
    default_info = "Error"

    def __init__(self, error: str, info: Optional[str] = None, status_code: Optional[int] = None, seed: Optional[int] = None) -> None:
        super().__init__(error)
        self.error = error
        self.info = info if info is not None else self.default_info
        if status_code is not None:
            self.status_code = status_code
        self.seed = seed

    def to_body(self) -> dict:
        return {"error": self.error, "image": None, "seed": self.seed or 0, "info": self.info}


class ValidationError(TryOnError):
    status_code = 400
    default_info = "Empty image"


class ConfigurationError(TryOnError):
    status_code = 500
    default_info = "Configuration error"


class SubmissionError(TryOnError):
    status_code = 502
    default_info = "Submission error"


class VendorError(TryOnError):
    status_code = 500
    default_info = "Error processing images"


class PollTimeoutError(TryOnError):
    status_code = 504
    default_info = "Timeout, please try again later"


class ClientDisconnected(TryOnError):
    # nginx convention; the client is gone so nobody reads it
    status_code = 499
    default_info = "Cancelled"


class UnexpectedError(TryOnError):
    status_code = 500
    default_info = "Error"


class PayloadTooLargeError(TryOnError):
    status_code = 413
    default_info = "Upload too large"
