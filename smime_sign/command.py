"""Argument vector for `openssl smime -sign`.

Option values go into the vector as discrete elements. Nothing here is ever
joined into a shell string or split on whitespace, so paths and passwords
containing spaces reach openssl intact.
"""

from __future__ import annotations

import os
from typing import List, Sequence

from .models import SignRequest


DEFAULT_OPENSSL_CMD = ("openssl",)

_PASSIN_PREFIX = "pass:"


def build_sign_args(request: SignRequest, openssl_cmd: Sequence[str] = DEFAULT_OPENSSL_CMD) -> List[str]:
    """Build the argv for signing `request`.

    openssl smime -sign -signer <cert> -inkey <key> -outform <FORMAT>
        [-passin pass:<password>] [-nodetach]
    """
    args = list(openssl_cmd) + [
        "smime",
        "-sign",
        "-signer", os.fspath(request.cert),
        "-inkey", os.fspath(request.key),
        "-outform", request.outform.value,
    ]
    if request.password:
        args += ["-passin", _PASSIN_PREFIX + request.password]
    if request.opaque:
        args.append("-nodetach")
    return args


def redact_args(args: Sequence[str]) -> List[str]:
    """Copy of `args` safe for logging (password replaced)."""
    out = list(args)
    for i, a in enumerate(out[:-1]):
        if a == "-passin" and out[i + 1].startswith(_PASSIN_PREFIX):
            out[i + 1] = _PASSIN_PREFIX + "***"
    return out
