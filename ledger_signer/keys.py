"""
ledger_signer.keys: P-256 private key import.

Two import paths, one per signing backend:

- import_software_key: python-ecdsa, pure in-process arithmetic. Accepts SEC1
  ("EC PRIVATE KEY") and PKCS#8 ("PRIVATE KEY") DER directly.
- import_platform_key: cryptography (OpenSSL). Like a platform crypto engine
  it only imports PKCS#8, so SEC1 input is first re-encoded with
  sec1_to_pkcs8. Re-encoding keeps the scalar and the curve unchanged.

Both return a PrivateKeyMaterial. Any failure is a KeyImportError with a
fixed message; the parser's own exception is chained for debugging.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any

import ecdsa
import ecdsa.der
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .errors import KeyImportError
from .pem import LABEL_EC_PRIVATE_KEY, LABEL_PRIVATE_KEY


BACKEND_SOFTWARE = "software"
BACKEND_PLATFORM = "platform"

FORMAT_SEC1 = "sec1"
FORMAT_PKCS8 = "pkcs8"

_FORMAT_BY_LABEL = {
    LABEL_EC_PRIVATE_KEY: FORMAT_SEC1,
    LABEL_PRIVATE_KEY: FORMAT_PKCS8,
}

P256_CURVE_NAME = "secp256r1"
_ECDSA_P256_NAME = ecdsa.NIST256p.name


@dataclass(frozen=True)
class PrivateKeyMaterial:
    """An imported P-256 private key, bound to one backend.

    ``handle`` is the backend's key object; there is no way back out to
    serialized private key bytes.
    """
    backend: str
    source_format: str
    handle: Any = field(repr=False)
    public_key_der: bytes = field(repr=False)

    @property
    def public_key_pem(self) -> str:
        pub = serialization.load_der_public_key(self.public_key_der)
        return pub.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")


def format_for_label(label: str) -> str:
    try:
        return _FORMAT_BY_LABEL[label]
    except KeyError:
        raise KeyImportError(label=label) from None


def _load_p256_openssl(der: bytes) -> ec.EllipticCurvePrivateKey:
    try:
        key = serialization.load_der_private_key(bytes(der), password=None)
    except Exception as e:
        raise KeyImportError() from e
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise KeyImportError(key_type=type(key).__name__)
    if key.curve.name != P256_CURVE_NAME:
        raise KeyImportError(curve=key.curve.name)
    return key


def sec1_to_pkcs8(der: bytes) -> bytes:
    """Re-wrap a SEC1 EC private key as unencrypted PKCS#8 DER."""
    key = _load_p256_openssl(der)
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _require_pkcs8(der: bytes) -> bytes:
    # PrivateKeyInfo: SEQUENCE { INTEGER version, SEQUENCE algorithm, OCTET STRING key }
    # SEC1 ECPrivateKey has an OCTET STRING where the algorithm SEQUENCE sits.
    try:
        body, _ = ecdsa.der.remove_sequence(bytes(der))
        _, rest = ecdsa.der.remove_integer(body)
    except Exception as e:
        raise KeyImportError() from e
    if not rest or rest[0] != 0x30:
        raise KeyImportError(expected=FORMAT_PKCS8)
    return bytes(der)


def import_platform_key(der: bytes, source_format: str = FORMAT_PKCS8) -> PrivateKeyMaterial:
    pkcs8 = sec1_to_pkcs8(der) if source_format == FORMAT_SEC1 else _require_pkcs8(der)
    key = _load_p256_openssl(pkcs8)
    public_der = key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return PrivateKeyMaterial(
        backend=BACKEND_PLATFORM,
        source_format=source_format,
        handle=key,
        public_key_der=public_der,
    )


def import_software_key(der: bytes, source_format: str = FORMAT_SEC1) -> PrivateKeyMaterial:
    try:
        key = ecdsa.SigningKey.from_der(bytes(der), hashfunc=hashlib.sha256)
    except Exception as e:
        raise KeyImportError() from e
    if key.curve.name != _ECDSA_P256_NAME:
        raise KeyImportError(curve=key.curve.name)
    return PrivateKeyMaterial(
        backend=BACKEND_SOFTWARE,
        source_format=source_format,
        handle=key,
        public_key_der=key.get_verifying_key().to_der(),
    )


def import_key(der: bytes, label: str = LABEL_EC_PRIVATE_KEY, backend: str = BACKEND_SOFTWARE) -> PrivateKeyMaterial:
    """Import DER key bytes taken from a ``label`` PEM block for ``backend``."""
    source_format = format_for_label(label)
    if backend == BACKEND_PLATFORM:
        return import_platform_key(der, source_format)
    if backend == BACKEND_SOFTWARE:
        return import_software_key(der, source_format)
    raise ValueError(f"Unsupported backend {backend!r}")
