"""ledger_signer package.

ECDSA P-256 / SHA-256 request signing for ledger clients:

- PEM private keys (SEC1 "EC PRIVATE KEY" or PKCS#8 "PRIVATE KEY")
- Two interchangeable backends: in-process python-ecdsa and the
  cryptography/OpenSSL engine
- ASN.1 DER signature output, as strict ledger verifiers expect

Convenience imports
------------------
The package avoids import-time side effects. These are loaded lazily:

    from ledger_signer import SoftwareSigner, PlatformSigner, build_signer

Errors are also re-exported:

    from ledger_signer import KeyFormatError, KeyImportError, SigningError
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments."""

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except Exception:
        return None


__version__ = (
    _read_version_from_pyproject()
    or "0.3.0"
)

__all__ = [
    "__version__",
    "Signer",
    "SoftwareSigner",
    "PlatformSigner",
    "build_signer",
    "build_signer_from_config",
    "SignerConfig",
    "RawSignature",
    "to_der",
    "decode_pem",
    "import_key",
    "SignerError",
    "KeyFormatError",
    "KeyImportError",
    "SigningError",
    "ConfigError",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "Signer": ("ledger_signer.signing", "Signer"),
    "SoftwareSigner": ("ledger_signer.signing", "SoftwareSigner"),
    "PlatformSigner": ("ledger_signer.signing", "PlatformSigner"),
    "build_signer": ("ledger_signer.signing", "build_signer"),
    "build_signer_from_config": ("ledger_signer.signing", "build_signer_from_config"),
    "SignerConfig": ("ledger_signer.config", "SignerConfig"),
    "RawSignature": ("ledger_signer.der", "RawSignature"),
    "to_der": ("ledger_signer.der", "to_der"),
    "decode_pem": ("ledger_signer.pem", "decode_pem"),
    "import_key": ("ledger_signer.keys", "import_key"),
    "SignerError": ("ledger_signer.errors", "SignerError"),
    "KeyFormatError": ("ledger_signer.errors", "KeyFormatError"),
    "KeyImportError": ("ledger_signer.errors", "KeyImportError"),
    "SigningError": ("ledger_signer.errors", "SigningError"),
    "ConfigError": ("ledger_signer.errors", "ConfigError"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'ledger_signer' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
