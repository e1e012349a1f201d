#!/usr/bin/env python3
"""
Fake `openssl smime -sign` for tests.

Reads content from stdin and writes a deterministic pseudo-signature to
stdout, framed according to -outform:

- body = sha256(cert || key || content) (+ content when -nodetach)
- PEM:   -----BEGIN PKCS7----- / base64(body) / -----END PKCS7-----
- SMIME: MIME header + base64(body)
- DER:   raw body

Behaviour knobs (environment):
- FAKE_OPENSSL_ARGV_LOG: write argv (JSON list) to this path
- FAKE_OPENSSL_EXIT: exit with this code after reading stdin
- FAKE_OPENSSL_SLEEP: sleep this many seconds before reading stdin
- FAKE_OPENSSL_ECHO: with -nodetach, echo each chunk as soon as it is read
"""
import base64
import hashlib
import json
import os
import sys
import time


def _opt(argv, name):
    if name in argv:
        i = argv.index(name)
        if i + 1 < len(argv):
            return argv[i + 1]
    return None


def main():
    argv = sys.argv[1:]
    log_path = os.getenv("FAKE_OPENSSL_ARGV_LOG")
    if log_path:
        with open(log_path, "w", encoding="utf-8") as f:
            json.dump(argv, f)

    if argv[:2] != ["smime", "-sign"]:
        print("fake openssl only supports 'smime -sign'", file=sys.stderr)
        return 1

    cert = _opt(argv, "-signer")
    key = _opt(argv, "-inkey")
    outform = _opt(argv, "-outform") or "SMIME"
    nodetach = "-nodetach" in argv

    for label, path in (("signer certificate", cert), ("signing key", key)):
        if not path or not os.path.exists(path):
            print(f"Can't open \"{path}\" for reading, No such file or directory", file=sys.stderr)
            print(f"unable to load {label}", file=sys.stderr)
            return 2

    with open(key, "rb") as f:
        key_bytes = f.read()
    if b"ENCRYPTED" in key_bytes:
        expected = key_bytes.split(b"ENCRYPTED:", 1)[1].strip().decode("utf-8")
        if _opt(argv, "-passin") != "pass:" + expected:
            print("bad decrypt", file=sys.stderr)
            return 3

    time.sleep(float(os.getenv("FAKE_OPENSSL_SLEEP", "0") or 0))

    h = hashlib.sha256()
    with open(cert, "rb") as f:
        h.update(f.read())
    h.update(key_bytes)

    out = sys.stdout.buffer
    echo = nodetach and os.getenv("FAKE_OPENSSL_ECHO") == "1"
    content = bytearray()
    while True:
        chunk = sys.stdin.buffer.read1(65536)
        if not chunk:
            break
        h.update(chunk)
        if echo:
            out.write(chunk)
            out.flush()
        else:
            content += chunk

    forced = os.getenv("FAKE_OPENSSL_EXIT")
    if forced:
        out.write(b"partial output")
        out.flush()
        print("forced failure", file=sys.stderr)
        return int(forced)

    body = h.digest() + (bytes(content) if nodetach and not echo else b"")
    if echo:
        out.write(h.digest())
    elif outform == "DER":
        out.write(body)
    elif outform == "PEM":
        out.write(b"-----BEGIN PKCS7-----\n")
        out.write(base64.encodebytes(body))
        out.write(b"-----END PKCS7-----\n")
    else:
        out.write(b"MIME-Version: 1.0\nContent-Type: application/pkcs7-mime; smime-type=signed-data\n\n")
        out.write(base64.encodebytes(body))
    out.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
