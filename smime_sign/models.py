"""Request/result types for a signing call."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .errors import InvalidInputError


PathLike = Union[str, os.PathLike]


class OutputFormat(str, Enum):
    """Encoding of the PKCS#7 structure (openssl `-outform`)."""

    SMIME = "SMIME"
    PEM = "PEM"
    DER = "DER"

    @classmethod
    def coerce(cls, value: Any) -> "OutputFormat":
        if value is None:
            return cls.PEM
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidInputError("Invalid output format", output_format=str(value)) from None


@dataclass(frozen=True)
class SignRequest:
    """One signing call.

    `content` may be a string, bytes, a binary file-like object, or a
    (sync or async) iterable of byte/string chunks. It is read exactly once.
    """

    content: Any = None
    key: Optional[PathLike] = None
    cert: Optional[PathLike] = None
    password: Optional[str] = None
    output_format: Union[OutputFormat, str, None] = OutputFormat.PEM
    opaque: bool = False

    def validate(self) -> None:
        """Raise InvalidInputError for missing required fields."""
        if _is_missing(self.content):
            raise InvalidInputError("Invalid content")
        if _is_missing(self.key):
            raise InvalidInputError("Invalid key")
        if _is_missing(self.cert):
            raise InvalidInputError("Invalid certificate")
        OutputFormat.coerce(self.output_format)

    @property
    def outform(self) -> OutputFormat:
        return OutputFormat.coerce(self.output_format)


@dataclass
class SignResult:
    """Signed output plus the process that produced it."""

    output: bytes
    process: Any = None

    @property
    def returncode(self) -> Optional[int]:
        return getattr(self.process, "returncode", None)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray, memoryview)):
        return len(value) == 0
    if isinstance(value, os.PathLike):
        return not os.fspath(value)
    return False
