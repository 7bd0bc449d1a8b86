"""
File-based Ed25519 key store for checkpoint signing.

Keys are stored as PEM at <home>/keys/{signer_id}.pem (PKCS8 private key)
and <home>/keys/{signer_id}.pub.pem (SPKI public key).
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from halo_eli.keys import generate_keypair_pem, public_key_fingerprint

logger = logging.getLogger("halo_eli.keystore")

DEFAULT_SIGNER_ID = "halo-local"


class HaloKeyStore:
    """PEM key store for signing master receipts."""

    def __init__(self, keys_dir: Optional[Path] = None):
        if keys_dir is None:
            from halo_eli.config import get_config
            keys_dir = get_config().keys_dir
        self.keys_dir = Path(keys_dir)

    def _key_path(self, signer_id: str) -> Path:
        return self.keys_dir / f"{signer_id}.pem"

    def _pub_path(self, signer_id: str) -> Path:
        return self.keys_dir / f"{signer_id}.pub.pem"

    def has_key(self, signer_id: str) -> bool:
        return self._key_path(signer_id).exists() and self._pub_path(signer_id).exists()

    def generate_key(self, signer_id: str = DEFAULT_SIGNER_ID) -> str:
        """Generate and persist a new keypair. Returns the private PEM."""
        self.keys_dir.mkdir(parents=True, exist_ok=True)
        private_pem, public_pem = generate_keypair_pem()
        key_path = self._key_path(signer_id)
        key_path.write_text(private_pem)
        key_path.chmod(0o600)
        self._pub_path(signer_id).write_text(public_pem)
        logger.info("generated Ed25519 key for signer %s", signer_id)
        return private_pem

    def ensure_key(self, signer_id: str = DEFAULT_SIGNER_ID) -> str:
        """Return existing private PEM or generate a new keypair."""
        if self.has_key(signer_id):
            return self.private_pem(signer_id)
        return self.generate_key(signer_id)

    def private_pem(self, signer_id: str = DEFAULT_SIGNER_ID) -> str:
        return self._key_path(signer_id).read_text()

    def public_pem(self, signer_id: str = DEFAULT_SIGNER_ID) -> str:
        return self._pub_path(signer_id).read_text()

    def list_signers(self) -> List[str]:
        """Signer ids (sorted) that have both private and public key files."""
        if not self.keys_dir.exists():
            return []
        signers: List[str] = []
        for key_path in sorted(self.keys_dir.glob("*.pem")):
            if key_path.name.endswith(".pub.pem"):
                continue
            signer_id = key_path.name[: -len(".pem")]
            if self.has_key(signer_id):
                signers.append(signer_id)
        return signers

    def signer_fingerprint(self, signer_id: str = DEFAULT_SIGNER_ID) -> str:
        """SHA-256 fingerprint of the signer's raw public key."""
        return public_key_fingerprint(self.public_pem(signer_id))

    def signer_info(self) -> List[Dict[str, Any]]:
        """Signer metadata for CLI rendering."""
        return [
            {
                "signer_id": signer_id,
                "fingerprint": self.signer_fingerprint(signer_id),
                "key_path": str(self._key_path(signer_id)),
                "pub_path": str(self._pub_path(signer_id)),
            }
            for signer_id in self.list_signers()
        ]


def get_default_keystore() -> HaloKeyStore:
    """Return the keystore under the configured home directory."""
    return HaloKeyStore()


__all__ = [
    "HaloKeyStore",
    "get_default_keystore",
    "DEFAULT_SIGNER_ID",
]
