"""Invoker configuration.

Environment:
- SMIME_OPENSSL_CMD: program prefix used in place of `openssl`, parsed with
  shlex (e.g. "/opt/openssl3/bin/openssl"). Only the prefix is split; option
  values are never passed through shlex.
- SMIME_TIMEOUT_SECONDS: kill the process and fail after this many seconds.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from typing import Optional, Tuple

from .command import DEFAULT_OPENSSL_CMD
from .errors import ConfigError


OPENSSL_CMD_ENV = "SMIME_OPENSSL_CMD"
TIMEOUT_ENV = "SMIME_TIMEOUT_SECONDS"


@dataclass(frozen=True)
class SignerConfig:
    openssl_cmd: Tuple[str, ...] = DEFAULT_OPENSSL_CMD
    timeout_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.openssl_cmd:
            raise ConfigError("openssl command must not be empty")
        if self.timeout_seconds is not None and not self.timeout_seconds > 0:
            raise ConfigError("timeout must be a positive number of seconds", timeout_seconds=self.timeout_seconds)


def parse_openssl_cmd(value: str) -> Tuple[str, ...]:
    try:
        parts = tuple(shlex.split(value))
    except ValueError as e:
        raise ConfigError(f"Cannot parse openssl command: {e}") from e
    if not parts:
        raise ConfigError("openssl command must not be empty")
    return parts


def parse_timeout(value: str, *, source: str = TIMEOUT_ENV) -> float:
    try:
        timeout = float(value)
    except ValueError:
        raise ConfigError(f"{source} must be a number (seconds)", value=value) from None
    if not timeout > 0:
        raise ConfigError(f"{source} must be positive", value=value)
    return timeout


def config_from_env(
    *,
    cmd_env: str = OPENSSL_CMD_ENV,
    timeout_env: str = TIMEOUT_ENV,
) -> SignerConfig:
    """Build a SignerConfig from environment variables (unset → defaults)."""
    cmd = (os.getenv(cmd_env, "") or "").strip()
    tout = (os.getenv(timeout_env, "") or "").strip()
    return SignerConfig(
        openssl_cmd=parse_openssl_cmd(cmd) if cmd else DEFAULT_OPENSSL_CMD,
        timeout_seconds=parse_timeout(tout, source=timeout_env) if tout else None,
    )
