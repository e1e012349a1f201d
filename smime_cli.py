#!/usr/bin/env python3
"""
smime-sign - Command Line Interface

Signs input as PKCS#7/S-MIME through `openssl smime -sign`.

Usage:
    smime-sign --key signer.key --cert signer.crt < message.txt > message.p7s
    smime-sign --key signer.key --cert signer.crt -i message.txt -o message.p7m --nodetach
    SIGNER_KEY_PASS=... smime-sign --key enc.key --cert signer.crt --password-env SIGNER_KEY_PASS

Exit Codes:
    0   Success - signed output written
    1   Invalid input or configuration
    2   Usage error (bad command-line flags, reported by argparse)
    3   Signing process failed (nonzero exit or could not be started)
    4   Content stream error while reading input
    5   Signing process timed out
"""

import argparse
import asyncio
import io
import logging
import os
import stat
import sys
from pathlib import Path
from typing import Optional

from smime_sign.config import (
    OPENSSL_CMD_ENV,
    SignerConfig,
    config_from_env,
    parse_openssl_cmd,
)
from smime_sign.errors import (
    ConfigError,
    InvalidInputError,
    ProcessFailedError,
    SignTimeoutError,
    SMIMEError,
    StreamError,
)
from smime_sign.models import OutputFormat, SignRequest
from smime_sign.signing import SigningInvoker


EXIT_SUCCESS = 0
EXIT_INVALID = 1
EXIT_USAGE = 2  # argparse
EXIT_PROCESS_FAILED = 3
EXIT_STREAM_ERROR = 4
EXIT_TIMEOUT = 5


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("smime_sign").setLevel(level)


def exit_code_for(err: SMIMEError) -> int:
    if isinstance(err, (InvalidInputError, ConfigError)):
        return EXIT_INVALID
    if isinstance(err, StreamError):
        return EXIT_STREAM_ERROR
    if isinstance(err, SignTimeoutError):
        return EXIT_TIMEOUT
    if isinstance(err, ProcessFailedError):
        return EXIT_PROCESS_FAILED
    return EXIT_INVALID


def read_password(args) -> Optional[str]:
    """Resolve the key password from --password-env or --password-file."""
    if args.password_env:
        value = os.environ.get(args.password_env)
        if value is None:
            raise ConfigError(f"Environment variable {args.password_env} is not set")
        return value
    if args.password_file:
        try:
            return Path(args.password_file).read_text(encoding="utf-8").splitlines()[0]
        except (OSError, IndexError) as e:
            raise ConfigError(f"Cannot read password file '{args.password_file}': {e}") from e
    return None


def build_config(args) -> SignerConfig:
    """Environment config with command-line overrides."""
    base = config_from_env()
    openssl_cmd = parse_openssl_cmd(args.openssl) if args.openssl else base.openssl_cmd
    timeout = args.timeout if args.timeout is not None else base.timeout_seconds
    return SignerConfig(openssl_cmd=openssl_cmd, timeout_seconds=timeout)


async def open_stdin():
    """Stdin as signing content.

    Pipes and sockets are read through the event loop so a timeout can
    interrupt a writer that never closes them. Returns (content, transport).
    """
    try:
        mode = os.fstat(sys.stdin.fileno()).st_mode
    except (OSError, ValueError, io.UnsupportedOperation):
        return sys.stdin.buffer, None
    if not (stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode)):
        return sys.stdin.buffer, None

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin.buffer
    )
    return reader, transport


async def run_sign(args) -> int:
    config = build_config(args)
    password = read_password(args)

    transport = None
    if args.input and args.input != "-":
        try:
            source = open(args.input, "rb")
        except OSError as e:
            raise InvalidInputError(f"Cannot open input '{args.input}': {e}") from e
    else:
        source, transport = await open_stdin()

    request = SignRequest(
        content=source,
        key=args.key,
        cert=args.cert,
        password=password,
        output_format=args.outform,
        opaque=args.nodetach,
    )
    try:
        result = await SigningInvoker(config).sign(request)
    finally:
        if transport is not None:
            transport.close()
        elif source is not sys.stdin.buffer:
            source.close()

    if args.output and args.output != "-":
        Path(args.output).write_bytes(result.output)
    else:
        sys.stdout.buffer.write(result.output)
        sys.stdout.buffer.flush()
    return EXIT_SUCCESS


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="smime-sign",
        description="Sign content as PKCS#7/S-MIME using openssl",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--key", required=True, help="Path to the signer private key")
    parser.add_argument("--cert", required=True, help="Path to the signer certificate")
    pw = parser.add_mutually_exclusive_group()
    pw.add_argument("--password-env", help="Environment variable holding the key password")
    pw.add_argument("--password-file", help="File whose first line is the key password")
    parser.add_argument(
        "--outform",
        default=OutputFormat.PEM.value,
        type=str.upper,
        choices=[f.value for f in OutputFormat],
        help="Output format (default: PEM)",
    )
    parser.add_argument("--nodetach", action="store_true", help="Opaque signing (embed the content)")
    parser.add_argument("--timeout", type=float, help="Kill openssl after this many seconds")
    parser.add_argument("--openssl", help=f"openssl command prefix (default: ${OPENSSL_CMD_ENV} or 'openssl')")
    parser.add_argument("-i", "--input", help="Input file (default: stdin)")
    parser.add_argument("-o", "--output", help="Output file (default: stdout)")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        return asyncio.run(run_sign(args))
    except SMIMEError as e:
        # Avoid stack traces in CLI.
        print(f"ERROR: {e}", file=sys.stderr)
        if isinstance(e, ProcessFailedError) and e.details.get("stderr"):
            print(e.details["stderr"], file=sys.stderr)
        return exit_code_for(e)


if __name__ == "__main__":
    sys.exit(main())
