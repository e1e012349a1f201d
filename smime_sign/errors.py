"""Stable error taxonomy for smime-sign.

Every failure of a signing call is raised as a subclass of `SMIMEError`, so
callers can handle them with one `except` clause or by kind.

Design goals:
- Stable `code` string suitable for programmatic handling.
- `retryable` flag for callers that want to retry transient failures.
- Structured `details` for debugging without parsing messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


SMIME_E_INVALID_INPUT = "SMIME_E_INVALID_INPUT"
SMIME_E_PROCESS_FAILED = "SMIME_E_PROCESS_FAILED"
SMIME_E_STREAM = "SMIME_E_STREAM"
SMIME_E_TIMEOUT = "SMIME_E_TIMEOUT"
SMIME_E_CONFIG = "SMIME_E_CONFIG"


@dataclass
class SMIMEError(Exception):
    """Base smime-sign exception with stable error code."""

    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": bool(self.retryable),
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class InvalidInputError(SMIMEError):
    """A required request field is missing or malformed. Raised before spawn."""

    def __init__(self, message: str, **details: Any):
        super().__init__(code=SMIME_E_INVALID_INPUT, message=message, details=details)


class ProcessFailedError(SMIMEError):
    """The signing process exited nonzero or could not be started."""

    def __init__(self, message: str = "Process failed", **details: Any):
        super().__init__(code=SMIME_E_PROCESS_FAILED, message=message, retryable=True, details=details)

    @property
    def returncode(self) -> int | None:
        return self.details.get("returncode")


class StreamError(SMIMEError):
    """The content source raised while it was being piped to the process."""

    def __init__(self, message: str = "Content stream failed", **details: Any):
        super().__init__(code=SMIME_E_STREAM, message=message, details=details)


class SignTimeoutError(SMIMEError, TimeoutError):
    """The signing process did not finish in time and was killed."""

    def __init__(self, timeout_seconds: float, **details: Any):
        details.setdefault("timeout_seconds", timeout_seconds)
        super().__init__(
            code=SMIME_E_TIMEOUT,
            message=f"Process timed out after {timeout_seconds}s",
            retryable=True,
            details=details,
        )


class ConfigError(SMIMEError):
    """Invalid environment or command-line configuration."""

    def __init__(self, message: str, **details: Any):
        super().__init__(code=SMIME_E_CONFIG, message=message, details=details)
