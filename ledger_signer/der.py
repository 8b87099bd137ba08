"""
ledger_signer.der: ECDSA signature encodings.

Signing engines produce IEEE P1363 signatures: r and s as two fixed-width
big-endian integers, concatenated. Ledger verifiers expect ASN.1 DER:

    0x30 <len>                    SEQUENCE
      0x02 <len> [0x00] <r>       INTEGER r
      0x02 <len> [0x00] <s>       INTEGER s

DER INTEGERs are minimal-length two's-complement, so leading zero bytes are
stripped (down to one byte) and a single 0x00 is prepended whenever the
first remaining byte has its high bit set. Lengths are single-byte; P-256
values are at most 33 bytes after padding.

This encoder is shared by every signing backend.
"""

from __future__ import annotations

from dataclasses import dataclass

P256_COORDINATE_SIZE = 32

_TAG_INTEGER = 0x02
_TAG_SEQUENCE = 0x30
_MAX_SHORT_LENGTH = 0x7F


@dataclass(frozen=True)
class RawSignature:
    """A P1363 (r, s) pair, each half the same fixed width."""
    r: bytes
    s: bytes

    def __post_init__(self) -> None:
        if len(self.r) != len(self.s) or not self.r:
            raise ValueError(
                f"r and s must be non-empty and equal width, got {len(self.r)} and {len(self.s)}"
            )

    @classmethod
    def from_p1363(cls, sig: bytes) -> "RawSignature":
        sig = bytes(sig)
        if not sig or len(sig) % 2:
            raise ValueError(f"P1363 signature must have an even, non-zero length, got {len(sig)}")
        half = len(sig) // 2
        return cls(r=sig[:half], s=sig[half:])

    @classmethod
    def from_ints(cls, r: int, s: int, size: int = P256_COORDINATE_SIZE) -> "RawSignature":
        if r < 0 or s < 0:
            raise ValueError("r and s must be non-negative")
        return cls(r=r.to_bytes(size, "big"), s=s.to_bytes(size, "big"))

    @property
    def r_int(self) -> int:
        return int.from_bytes(self.r, "big")

    @property
    def s_int(self) -> int:
        return int.from_bytes(self.s, "big")

    def to_p1363(self) -> bytes:
        return self.r + self.s


def _der_length(n: int) -> int:
    if n > _MAX_SHORT_LENGTH:
        raise ValueError(f"DER length {n} needs long-form encoding")
    return n


def _der_integer(value: bytes) -> bytes:
    v = value.lstrip(b"\x00") or b"\x00"
    if v[0] & 0x80:
        v = b"\x00" + v
    return bytes([_TAG_INTEGER, _der_length(len(v))]) + v


def to_der(sig: RawSignature) -> bytes:
    """Encode ``sig`` as DER ``SEQUENCE { INTEGER r, INTEGER s }``."""
    body = _der_integer(sig.r) + _der_integer(sig.s)
    return bytes([_TAG_SEQUENCE, _der_length(len(body))]) + body


def p1363_to_der(sig: bytes) -> bytes:
    return to_der(RawSignature.from_p1363(sig))
