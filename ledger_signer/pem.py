"""
ledger_signer.pem: strict PEM armor parsing.

PEM text is parsed line by line rather than by string replacement, so that
CRLF line endings, stray whitespace, explanatory text around the armor and
multiple blocks in one file are all handled the same way. Only a block whose
label matches the requested label exactly is ever decoded.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple, Union

from .errors import KeyFormatError


LABEL_EC_PRIVATE_KEY = "EC PRIVATE KEY"
LABEL_PRIVATE_KEY = "PRIVATE KEY"

# SEC1 first: it is the format ledger clients are issued.
PRIVATE_KEY_LABELS: Tuple[str, ...] = (LABEL_EC_PRIVATE_KEY, LABEL_PRIVATE_KEY)

_BEGIN_RE = re.compile(r"^-----BEGIN ([A-Z0-9][A-Z0-9 ]*)-----$")
_END_RE = re.compile(r"^-----END ([A-Z0-9][A-Z0-9 ]*)-----$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class PemBlock:
    """One decoded armor block."""
    label: str
    der: bytes

    def __repr__(self) -> str:
        # Bodies are usually key material.
        return f"PemBlock(label={self.label!r}, der=<{len(self.der)} bytes>)"


def _as_text(pem: Union[str, bytes]) -> str:
    if isinstance(pem, str):
        return pem
    if isinstance(pem, (bytes, bytearray)):
        try:
            return bytes(pem).decode("ascii")
        except UnicodeDecodeError as e:
            raise KeyFormatError("PEM text must be ASCII") from e
    raise KeyFormatError("PEM text must be str or bytes", type=type(pem).__name__)


@dataclass(frozen=True)
class _RawBlock:
    label: str
    lines: Tuple[str, ...]


def _scan_blocks(text: str) -> List[_RawBlock]:
    # Armor framing only; bodies are left undecoded.
    blocks: List[_RawBlock] = []
    label = None
    lines: List[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if label is None:
            m = _BEGIN_RE.match(line)
            if m:
                label = m.group(1)
                lines = []
            continue

        if _BEGIN_RE.match(line):
            raise KeyFormatError("Nested PEM BEGIN marker", label=label)
        m = _END_RE.match(line)
        if m:
            if m.group(1) != label:
                raise KeyFormatError(
                    "PEM BEGIN/END labels do not match",
                    begin=label,
                    end=m.group(1),
                )
            blocks.append(_RawBlock(label=label, lines=tuple(lines)))
            label = None
            continue
        if line:
            lines.append(line)

    if label is not None:
        raise KeyFormatError("PEM block is missing its END marker", label=label)
    return blocks


def _decode_block(block: _RawBlock) -> PemBlock:
    if any(":" in line for line in block.lines):
        # RFC 1421 headers, e.g. Proc-Type: 4,ENCRYPTED
        raise KeyFormatError("Encrypted or annotated PEM is not supported", label=block.label)
    body = _WHITESPACE_RE.sub("", "".join(block.lines))
    if not body:
        raise KeyFormatError("PEM block has an empty body", label=block.label)
    try:
        der = base64.b64decode(body.encode("ascii"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyFormatError("PEM body is not valid base64", label=block.label) from e
    return PemBlock(label=block.label, der=der)


def iter_pem_blocks(pem: Union[str, bytes]) -> Iterator[PemBlock]:
    """Yield every armor block in ``pem`` in order of appearance.

    Text outside of blocks is ignored. Raises KeyFormatError on mismatched,
    nested or unterminated blocks, on encapsulated headers (encrypted PEM)
    and on bodies that are not valid base64.
    """
    for block in _scan_blocks(_as_text(pem)):
        yield _decode_block(block)


def _select_block(blocks: List[_RawBlock], expected_label: str) -> _RawBlock:
    matches = [b for b in blocks if b.label == expected_label]
    if not matches:
        raise KeyFormatError("No PEM block with the expected label", expected=expected_label)
    if len(matches) > 1:
        raise KeyFormatError("More than one PEM block with the expected label", expected=expected_label)
    return matches[0]


def decode_pem(pem: Union[str, bytes], expected_label: str) -> bytes:
    """Return the DER body of the single ``expected_label`` block in ``pem``.

    Only that block is decoded; other blocks just need well-formed armor.
    """
    blocks = _scan_blocks(_as_text(pem))
    return _decode_block(_select_block(blocks, expected_label)).der


def read_private_key_pem(pem: Union[str, bytes]) -> Tuple[str, bytes]:
    """Find the private key block in ``pem``.

    Returns ``(label, der)`` for the first of PRIVATE_KEY_LABELS present.
    """
    blocks = _scan_blocks(_as_text(pem))
    labels = {b.label for b in blocks}
    for label in PRIVATE_KEY_LABELS:
        if label in labels:
            return label, _decode_block(_select_block(blocks, label)).der
    raise KeyFormatError(
        "No EC PRIVATE KEY or PRIVATE KEY block found",
        found=sorted(labels),
    )
