"""
Environment-driven configuration.

The core functions take keys and policy as arguments; this module is where
the CLI (and any other boundary layer) resolves them from the environment.

    RECEIPT_SIGNING_KEY / HALO_SIGNING_KEY   HMAC key for simple receipts
    VALET_RECEIPT_HMAC_KEY                   HMAC key of the upstream producer
    RECEIPT_SIGNING_KEY_PEM                  Ed25519 private key (PKCS8 PEM)
    RECEIPT_VERIFY_KEY                       Ed25519 public key (SPKI PEM)
    HALO_ELI_HOME                            key store root (~/.halo_eli)
    HALO_ELI_LOG_LEVEL                       log level for the CLI
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEV_SIGNING_KEY = "test-signing-key-32-bytes-padded!"

_PEM_MARKER = "-----BEGIN"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value if value else None


def _hmac_signing_key() -> str:
    # RECEIPT_SIGNING_KEY doubles as the Ed25519 PEM slot in older setups.
    key = _env("RECEIPT_SIGNING_KEY")
    if key and _PEM_MARKER not in key:
        return key
    return _env("HALO_SIGNING_KEY") or DEV_SIGNING_KEY


def _ed25519_signing_pem() -> Optional[str]:
    pem = _env("RECEIPT_SIGNING_KEY_PEM")
    if pem:
        return pem
    key = _env("RECEIPT_SIGNING_KEY")
    if key and _PEM_MARKER in key:
        return key
    return None


def halo_home() -> Path:
    """Return the halo_eli data directory."""
    return Path(os.environ.get("HALO_ELI_HOME") or Path.home() / ".halo_eli")


@dataclass(frozen=True)
class HaloConfig:
    """Resolved boundary configuration."""

    signing_key: str = field(default_factory=_hmac_signing_key)
    upstream_hmac_key: Optional[str] = field(
        default_factory=lambda: _env("VALET_RECEIPT_HMAC_KEY")
    )
    signing_key_pem: Optional[str] = field(default_factory=_ed25519_signing_pem)
    verify_key_pem: Optional[str] = field(default_factory=lambda: _env("RECEIPT_VERIFY_KEY"))
    home: Path = field(default_factory=halo_home)
    log_level: str = field(
        default_factory=lambda: os.environ.get("HALO_ELI_LOG_LEVEL", "WARNING")
    )

    @property
    def keys_dir(self) -> Path:
        return self.home / "keys"


def get_config() -> HaloConfig:
    """Build a config from the current environment."""
    return HaloConfig()


__all__ = ["DEV_SIGNING_KEY", "HaloConfig", "get_config", "halo_home"]
