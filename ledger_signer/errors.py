"""Stable error taxonomy for ledger_signer.

Every failure surfaced by the signer is a ``SignerError`` carrying a stable
machine-readable ``code``. The kind-specific subclasses let callers tell a bad
credential (``KeyFormatError``, ``KeyImportError``) apart from a signing
infrastructure failure (``SigningError``) without parsing messages.

Messages are fixed strings. The underlying library exception, when there is
one, is chained as ``__cause__`` and never interpolated into the message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


SIGNER_E_KEY_FORMAT = "SIGNER_E_KEY_FORMAT"
SIGNER_E_KEY_IMPORT = "SIGNER_E_KEY_IMPORT"
SIGNER_E_SIGNING = "SIGNER_E_SIGNING"
SIGNER_E_CONFIG = "SIGNER_E_CONFIG"

MSG_KEY_IMPORT = "Failed to load private key"
MSG_SIGNING = "Failed to sign the request"


@dataclass
class SignerError(Exception):
    """Base signer exception with stable error code."""

    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": bool(self.retryable),
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class KeyFormatError(SignerError):
    """Malformed PEM armor or an invalid base64 body."""

    def __init__(self, message: str = "Malformed PEM private key", **details: Any) -> None:
        super().__init__(code=SIGNER_E_KEY_FORMAT, message=message, details=details)


class KeyImportError(SignerError):
    """Well-formed bytes that are not a P-256 EC private key."""

    def __init__(self, message: str = MSG_KEY_IMPORT, **details: Any) -> None:
        super().__init__(code=SIGNER_E_KEY_IMPORT, message=message, details=details)


class SigningError(SignerError):
    """The signing primitive failed after the key was imported."""

    def __init__(self, message: str = MSG_SIGNING, **details: Any) -> None:
        super().__init__(code=SIGNER_E_SIGNING, message=message, retryable=True, details=details)


class ConfigError(SignerError):
    """Missing or invalid client configuration."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(code=SIGNER_E_CONFIG, message=message, details=details)