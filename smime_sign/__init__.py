"""smime-sign package.

Signs content as PKCS#7/S-MIME by piping it through `openssl smime -sign`:

- One external process per call, no shared state between calls
- Content streamed into stdin while stdout is collected concurrently
- Argument vectors built from option values, never from a shell string
- Fail-closed errors with stable codes (see smime_sign.errors)

Convenience imports
------------------
The package avoids import-time side effects. These are loaded lazily:

    from smime_sign import SigningInvoker, SignRequest, sign, sign_sync
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments.

    The project version is a simple `version = "..."` field in
    `pyproject.toml`, so a regex parse is enough.
    """

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except Exception:
        return None


# Prefer repo-local pyproject version (tests), otherwise a hardcoded default.
__version__ = (
    _read_version_from_pyproject()
    or "0.3.0"
)

__all__ = [
    "__version__",
    "SigningInvoker",
    "SignRequest",
    "SignResult",
    "OutputFormat",
    "SignerConfig",
    "sign",
    "sign_sync",
    "SMIMEError",
    "InvalidInputError",
    "ProcessFailedError",
    "StreamError",
    "SignTimeoutError",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "SigningInvoker": ("smime_sign.signing", "SigningInvoker"),
    "sign": ("smime_sign.signing", "sign"),
    "sign_sync": ("smime_sign.signing", "sign_sync"),
    "SignRequest": ("smime_sign.models", "SignRequest"),
    "SignResult": ("smime_sign.models", "SignResult"),
    "OutputFormat": ("smime_sign.models", "OutputFormat"),
    "SignerConfig": ("smime_sign.config", "SignerConfig"),
    "SMIMEError": ("smime_sign.errors", "SMIMEError"),
    "InvalidInputError": ("smime_sign.errors", "InvalidInputError"),
    "ProcessFailedError": ("smime_sign.errors", "ProcessFailedError"),
    "StreamError": ("smime_sign.errors", "StreamError"),
    "SignTimeoutError": ("smime_sign.errors", "SignTimeoutError"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        # Cache the resolved attribute on the module for faster future access.
        globals()[name] = value
        return value
    raise AttributeError(f"module 'smime_sign' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
