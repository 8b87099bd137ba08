#!/usr/bin/env python3
"""
Ledger request signer - Command Line Interface

Usage:
    ledger-sign sign --key <key.pem> [--in FILE] [--encoding base64|hex|raw]
                                          Sign FILE (or stdin) and print the DER signature
    ledger-sign verify --pubkey <pub.pem> --signature SIG [--in FILE]
                                          Verify a DER signature against a public key
    ledger-sign pubkey --key <key.pem>    Print the public key of a private key
"""

import argparse
import asyncio
import base64
import binascii
import logging
import sys
from pathlib import Path

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ledger_signer.errors import SignerError
from ledger_signer.signing import PlatformSigner, build_signer

logger = logging.getLogger("ledger_signer")

ENCODINGS = ("base64", "hex", "raw")


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S"
    )
    logger.setLevel(level)


def _read_input(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def _read_key(path: str) -> str:
    p = Path(path)
    if not p.exists():
        raise SystemExit(f"Key file not found: {p}")
    return p.read_text(encoding="utf-8")


def _encode_signature(sig: bytes, encoding: str) -> bytes:
    if encoding == "hex":
        return sig.hex().encode("ascii") + b"\n"
    if encoding == "raw":
        return sig
    return base64.b64encode(sig) + b"\n"


def _decode_signature(text: str, encoding: str) -> bytes:
    text = text.strip()
    try:
        if encoding == "hex":
            return bytes.fromhex(text)
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (ValueError, binascii.Error) as e:
        raise SystemExit(f"Signature is not valid {encoding}: {e}")


def cmd_sign(args):
    """Sign the input and write the DER signature to stdout."""
    signer = build_signer(_read_key(args.key), backend=args.backend)
    payload = _read_input(args.input)
    if isinstance(signer, PlatformSigner):
        sig = asyncio.run(signer.sign(payload))
    else:
        sig = signer.sign(payload)
    sys.stdout.buffer.write(_encode_signature(sig, args.encoding))
    sys.stdout.flush()
    return 0


def cmd_verify(args):
    """Verify a DER ECDSA-SHA256 signature with a standard verifier."""
    if args.encoding == "raw":
        raise SystemExit("verify accepts base64 or hex signatures")
    try:
        pub = serialization.load_pem_public_key(Path(args.pubkey).read_bytes())
    except OSError as e:
        raise SystemExit(f"Failed to read public key file '{args.pubkey}': {e}")
    except (ValueError, UnsupportedAlgorithm) as e:
        raise SystemExit(f"Public key is not a valid PEM public key: {e}")
    if not isinstance(pub, ec.EllipticCurvePublicKey):
        raise SystemExit("Public key is not an EC key")
    sig = _decode_signature(args.signature, args.encoding)
    payload = _read_input(args.input)
    try:
        pub.verify(sig, payload, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        print("INVALID")
        return 1
    print("OK")
    return 0


def cmd_pubkey(args):
    """Print the SubjectPublicKeyInfo PEM for a private key."""
    signer = build_signer(_read_key(args.key), backend=args.backend)
    sys.stdout.write(signer.public_key_pem)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="ledger-sign",
        description="Ledger request signer CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # sign command
    sign_parser = subparsers.add_parser("sign", help="Sign a payload")
    sign_parser.add_argument("--key", required=True, help="PEM private key file")
    sign_parser.add_argument("--backend", default="software", help="software (default) or platform")
    sign_parser.add_argument("--in", dest="input", default="-", help="Payload file (default: stdin)")
    sign_parser.add_argument("--encoding", choices=ENCODINGS, default="base64", help="Output encoding")
    sign_parser.set_defaults(func=cmd_sign)

    # verify command
    verify_parser = subparsers.add_parser("verify", help="Verify a DER signature")
    verify_parser.add_argument("--pubkey", required=True, help="PEM public key file")
    verify_parser.add_argument("--signature", required=True, help="Signature (base64 or hex)")
    verify_parser.add_argument("--in", dest="input", default="-", help="Payload file (default: stdin)")
    verify_parser.add_argument("--encoding", choices=ENCODINGS, default="base64", help="Signature encoding")
    verify_parser.set_defaults(func=cmd_verify)

    # pubkey command
    pubkey_parser = subparsers.add_parser("pubkey", help="Print the public key for a private key")
    pubkey_parser.add_argument("--key", required=True, help="PEM private key file")
    pubkey_parser.add_argument("--backend", default="software", help="software (default) or platform")
    pubkey_parser.set_defaults(func=cmd_pubkey)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    try:
        return args.func(args)
    except SignerError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
