"""
ledger_signer.signing: signing abstraction for ledger requests.

One capability, two backends:
- SoftwareSigner: python-ecdsa, entirely in-process. ``sign`` blocks.
- PlatformSigner: cryptography/OpenSSL engine. ``sign`` is a coroutine; the
  engine call runs on a worker thread.

Both take a PEM private key at construction, import it lazily on first use
(at most once per signer, safe under concurrent first use), sign
SHA-256(payload) with ECDSA P-256 and return the DER signature produced by
ledger_signer.der.to_der.

Error contract, identical for both backends:
- KeyFormatError: the PEM armor or base64 body is malformed.
- KeyImportError: the key is not a usable P-256 EC private key.
- SigningError: anything failing after the key was imported.
A signer never returns a partial signature.
"""

from __future__ import annotations

import abc
import asyncio
import hashlib
import logging
import threading
from typing import Any, Awaitable, Callable, Generic, Optional, Protocol, TypeVar, Union, runtime_checkable

import ecdsa.util
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from .config import SignerConfig, normalize_backend
from .der import RawSignature, to_der
from .errors import KeyFormatError, SigningError
from .keys import BACKEND_PLATFORM, BACKEND_SOFTWARE, PrivateKeyMaterial, import_key
from .pem import read_private_key_pem

logger = logging.getLogger("ledger_signer")

T = TypeVar("T")


@runtime_checkable
class Signer(Protocol):
    """Protocol implemented by signing backends."""
    backend: str

    @property
    def public_key_pem(self) -> str: ...

    def sign(self, payload: bytes) -> Union[bytes, Awaitable[bytes]]: ...


class KeyCell(Generic[T]):
    """Initialize-once holder.

    The factory runs at most once successfully; concurrent first callers wait
    on the lock. If the factory raises, the cell stays empty and the next
    caller runs it again.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def get(self) -> T:
        if not self._ready:
            with self._lock:
                if not self._ready:
                    self._value = self._factory()
                    self._ready = True
        return self._value  # type: ignore[return-value]


def _as_payload(payload: Any) -> bytes:
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    raise TypeError(f"payload must be bytes-like, got {type(payload).__name__}")


def sign_raw(key: PrivateKeyMaterial, payload: bytes) -> RawSignature:
    """ECDSA-sign SHA-256(payload) with ``key`` and return the P1363 pair."""
    try:
        if key.backend == BACKEND_SOFTWARE:
            # RFC 6979 deterministic nonce
            sig = key.handle.sign_deterministic(
                payload,
                hashfunc=hashlib.sha256,
                sigencode=ecdsa.util.sigencode_string,
            )
            return RawSignature.from_p1363(sig)
        if key.backend == BACKEND_PLATFORM:
            der = key.handle.sign(payload, ec.ECDSA(hashes.SHA256()))
            r, s = decode_dss_signature(der)
            return RawSignature.from_ints(r, s)
    except Exception as e:
        raise SigningError(backend=key.backend) from e
    raise SigningError(backend=key.backend)


class _LazyKeySigner(abc.ABC):
    backend: str = ""

    def __init__(self, private_key_pem: Union[str, bytes]) -> None:
        if not private_key_pem:
            raise KeyFormatError("Private key PEM is empty")
        self._pem: Optional[Union[str, bytes]] = private_key_pem
        self._import_count = 0
        self._key: KeyCell[PrivateKeyMaterial] = KeyCell(self._import_key)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(backend={self.backend!r}, key_loaded={self._key.ready})"

    def _import_key(self) -> PrivateKeyMaterial:
        label, der = read_private_key_pem(self._pem or "")
        self._import_count += 1
        material = import_key(der, label, backend=self.backend)
        # The PEM is not needed once the key is imported.
        self._pem = None
        logger.debug("Imported %s private key for %s signer", material.source_format, self.backend)
        return material

    @property
    def import_count(self) -> int:
        """Number of key imports attempted by this signer."""
        return self._import_count

    @property
    def key_material(self) -> PrivateKeyMaterial:
        return self._key.get()

    @property
    def public_key_pem(self) -> str:
        return self.key_material.public_key_pem

    @abc.abstractmethod
    def sign(self, payload: bytes) -> Union[bytes, Awaitable[bytes]]:
        raise NotImplementedError


class SoftwareSigner(_LazyKeySigner):
    """In-process signer (python-ecdsa, deterministic nonces)."""
    backend = BACKEND_SOFTWARE

    def sign(self, payload: bytes) -> bytes:
        data = _as_payload(payload)
        return to_der(sign_raw(self.key_material, data))


class PlatformSigner(_LazyKeySigner):
    """Signer backed by the platform OpenSSL engine via cryptography.

    ``sign`` must be awaited.
    """
    backend = BACKEND_PLATFORM

    async def sign(self, payload: bytes) -> bytes:
        data = _as_payload(payload)
        key = await asyncio.to_thread(self._key.get)
        raw = await asyncio.to_thread(sign_raw, key, data)
        return to_der(raw)


_SIGNERS = {
    BACKEND_SOFTWARE: SoftwareSigner,
    BACKEND_PLATFORM: PlatformSigner,
}


def build_signer(private_key_pem: Union[str, bytes], backend: str = BACKEND_SOFTWARE) -> _LazyKeySigner:
    """Build a signer for ``backend`` (see config.normalize_backend for aliases)."""
    name = normalize_backend(backend)
    logger.debug("Using %s signer backend", name)
    return _SIGNERS[name](private_key_pem)


def build_signer_from_config(config: SignerConfig) -> _LazyKeySigner:
    return build_signer(config.private_key_pem, backend=config.backend)
