"""
ledger_signer.config: signer configuration from client properties.

Ledger clients are configured with a flat property dictionary. The signer
reads:

    scalar.ledger.client.private_key_pem    PEM text of the private key
    scalar.ledger.client.private_key_path   path to a PEM file (alternative)
    scalar.ledger.client.signer_backend     software (default) | platform

Environment variables override the properties, which lets deployments switch
backend or key file without touching the property file:

    LEDGER_SIGNER_BACKEND
    LEDGER_PRIVATE_KEY_PATH
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import ConfigError


PROP_PRIVATE_KEY_PEM = "scalar.ledger.client.private_key_pem"
PROP_PRIVATE_KEY_PATH = "scalar.ledger.client.private_key_path"
PROP_SIGNER_BACKEND = "scalar.ledger.client.signer_backend"

ENV_SIGNER_BACKEND = "LEDGER_SIGNER_BACKEND"
ENV_PRIVATE_KEY_PATH = "LEDGER_PRIVATE_KEY_PATH"

DEFAULT_BACKEND = "software"

_BACKEND_ALIASES = {
    "software": "software",
    "inproc": "software",
    "in-process": "software",
    "ecdsa": "software",
    "platform": "platform",
    "openssl": "platform",
    "cryptography": "platform",
}


def normalize_backend(name: Optional[str]) -> str:
    mode = (name or DEFAULT_BACKEND).strip().lower()
    try:
        return _BACKEND_ALIASES[mode]
    except KeyError:
        raise ConfigError(
            f"Unsupported signer backend {mode!r}; expected software|platform",
            backend=mode,
        ) from None


def _read_key_file(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read private key file '{path}'", path=path) from e


@dataclass
class SignerConfig:
    """Resolved signer settings."""
    private_key_pem: str = field(repr=False)
    backend: str = DEFAULT_BACKEND

    @classmethod
    def from_properties(
        cls,
        props: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
    ) -> "SignerConfig":
        """Resolve settings from client ``props``, with ``env`` overrides.

        ``env`` defaults to os.environ. Raises ConfigError when no private key
        is configured, the key file cannot be read, or the backend is unknown.
        """
        env = os.environ if env is None else env

        backend = normalize_backend(
            (env.get(ENV_SIGNER_BACKEND) or "").strip() or props.get(PROP_SIGNER_BACKEND)
        )

        key_path = (env.get(ENV_PRIVATE_KEY_PATH) or "").strip() or props.get(PROP_PRIVATE_KEY_PATH)
        if key_path:
            pem = _read_key_file(str(key_path))
        else:
            pem = props.get(PROP_PRIVATE_KEY_PEM)

        if not pem:
            raise ConfigError(
                f"{PROP_PRIVATE_KEY_PEM} or {PROP_PRIVATE_KEY_PATH} is required",
                property=PROP_PRIVATE_KEY_PEM,
            )
        return cls(private_key_pem=str(pem), backend=backend)
