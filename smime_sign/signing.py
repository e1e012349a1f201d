"""
smime_sign.signing: PKCS#7/S-MIME signing through an external openssl process.

SigningInvoker spawns one `openssl smime -sign` per call and never touches key
material itself.

Contract with the external command:
- argv: smime -sign -signer <cert> -inkey <key> -outform <FORMAT>
        [-passin pass:<password>] [-nodetach]
- stdin: the content to sign
- stdout: the signed structure
- exit code 0 on success

All modes are fail-closed: a nonzero exit, a content stream error or a timeout
fails the call and no partial output is returned.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional, Tuple, Union

from .command import build_sign_args, redact_args
from .config import SignerConfig, config_from_env
from .content import READ_CHUNK_SIZE, iter_content
from .errors import InvalidInputError, ProcessFailedError, SignTimeoutError, StreamError
from .models import SignRequest, SignResult

logger = logging.getLogger("smime_sign")

Callback = Callable[[Optional[BaseException], Optional[SignResult]], Any]

_STDERR_TAIL_BYTES = 2000


async def _pump_stdin(chunks: AsyncIterator[bytes], stdin: asyncio.StreamWriter) -> int:
    """Copy every chunk into stdin, then close it. Returns bytes written."""
    written = 0
    try:
        while True:
            try:
                chunk = await anext(chunks)
            except StopAsyncIteration:
                break
            except Exception as e:
                raise StreamError(reason=f"{type(e).__name__}: {e}") from e
            if not chunk:
                continue
            stdin.write(chunk)
            await stdin.drain()
            written += len(chunk)
    except (BrokenPipeError, ConnectionResetError):
        # The process stopped reading (e.g. it could not load the key).
        # Its exit code decides the outcome.
        logger.debug("signing process closed stdin after %d bytes", written)
    finally:
        stdin.close()
        await chunks.aclose()
    return written


async def _collect(stream: asyncio.StreamReader) -> bytes:
    parts = []
    while True:
        data = await stream.read(READ_CHUNK_SIZE)
        if not data:
            break
        parts.append(data)
    return b"".join(parts)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


class SigningInvoker:
    """Signs content by piping it through `openssl smime -sign`.

    Stateless apart from its configuration; concurrent `sign` calls each own
    their process and buffers.
    """

    def __init__(self, config: Optional[SignerConfig] = None):
        self.config = config or SignerConfig()

    @classmethod
    def from_env(cls) -> "SigningInvoker":
        return cls(config_from_env())

    async def sign(
        self,
        request: SignRequest,
        callback: Optional[Callback] = None,
        *,
        timeout_seconds: Optional[float] = None,
    ) -> Optional[SignResult]:
        """Sign `request` and return the result.

        With `callback`, the outcome is also reported as `callback(error, result)`;
        a failure is then delivered only to the callback and None is returned.
        """
        try:
            result = await self._sign(request, timeout_seconds)
        except Exception as e:
            if callback is None:
                raise
            callback(e, None)
            return None
        if callback is not None:
            callback(None, result)
        return result

    async def _sign(self, request: SignRequest, timeout_seconds: Optional[float]) -> SignResult:
        request.validate()
        chunks = iter_content(request.content)
        args = build_sign_args(request, self.config.openssl_cmd)
        timeout = timeout_seconds if timeout_seconds is not None else self.config.timeout_seconds

        logger.debug("spawning %s", redact_args(args))
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            await chunks.aclose()
            logger.warning("cannot start %s: %s", args[0], e)
            raise ProcessFailedError(program=args[0], reason=str(e)) from e

        feeder = asyncio.create_task(_pump_stdin(chunks, proc.stdin))
        stdout_task = asyncio.create_task(_collect(proc.stdout))
        stderr_task = asyncio.create_task(_collect(proc.stderr))
        tasks = (feeder, stdout_task, stderr_task)

        async def finish() -> Tuple[int, bytes, bytes]:
            await feeder
            out = await stdout_task
            err = await stderr_task
            return await proc.wait(), out, err

        try:
            returncode, output, stderr = await asyncio.wait_for(finish(), timeout)
        except asyncio.TimeoutError:
            logger.warning("signing process %s timed out after %ss; killing it", proc.pid, timeout)
            raise SignTimeoutError(timeout, pid=proc.pid) from None
        except StreamError as e:
            logger.warning("content stream failed; killing signing process %s: %s", proc.pid, e.details.get("reason"))
            raise
        finally:
            await _kill(proc)
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if returncode != 0:
            tail = stderr[-_STDERR_TAIL_BYTES:].decode("utf-8", errors="replace").strip()
            logger.warning("signing process exited with code %s: %s", returncode, tail)
            raise ProcessFailedError(returncode=returncode, stderr=tail)

        logger.debug("signed %d bytes (%s) with process %s", len(output), request.outform.value, proc.pid)
        return SignResult(output=output, process=proc)


# openssl flag names accepted as option keys.
_FIELD_ALIASES = {"outform": "output_format", "nodetach": "opaque"}
_REQUEST_FIELDS = frozenset(f.name for f in dataclasses.fields(SignRequest))


def _coerce_request(request: Union[SignRequest, Mapping[str, Any], None], fields: Mapping[str, Any]) -> SignRequest:
    if isinstance(request, SignRequest):
        if fields:
            raise InvalidInputError("Unexpected sign options", options=sorted(fields))
        return request
    merged: Dict[str, Any] = {}
    for name, value in {**dict(request or {}), **fields}.items():
        merged[_FIELD_ALIASES.get(name, name)] = value
    unknown = sorted(set(merged) - _REQUEST_FIELDS)
    if unknown:
        raise InvalidInputError("Unknown sign options", options=unknown)
    return SignRequest(**merged)


async def sign(
    request: Union[SignRequest, Mapping[str, Any], None] = None,
    *,
    callback: Optional[Callback] = None,
    config: Optional[SignerConfig] = None,
    timeout_seconds: Optional[float] = None,
    **fields: Any,
) -> Optional[SignResult]:
    """Sign content with a one-off invoker.

    Accepts a SignRequest, a mapping of its fields, or the fields as keywords:

        result = await sign(content=b"...", key="signer.key", cert="signer.crt")

    `outform` and `nodetach` are accepted for `output_format` and `opaque`.
    With `callback`, configuration and option errors are reported through it
    like any other failure.
    """
    try:
        invoker = SigningInvoker(config) if config is not None else SigningInvoker.from_env()
        req = _coerce_request(request, fields)
    except Exception as e:
        if callback is None:
            raise
        callback(e, None)
        return None
    return await invoker.sign(req, callback, timeout_seconds=timeout_seconds)


def sign_sync(
    request: Union[SignRequest, Mapping[str, Any], None] = None,
    **kwargs: Any,
) -> Optional[SignResult]:
    """Blocking wrapper around `sign` for code without an event loop."""
    return asyncio.run(sign(request, **kwargs))
