"""Shared fixtures: isolate every test from the host environment."""

from __future__ import annotations

from pathlib import Path

import pytest

from halo_eli.contract import reset_contract_cache
from halo_eli.keys import generate_keypair_pem

_ENV_VARS = (
    "RECEIPT_SIGNING_KEY",
    "HALO_SIGNING_KEY",
    "RECEIPT_SIGNING_KEY_PEM",
    "RECEIPT_VERIFY_KEY",
    "VALET_RECEIPT_HMAC_KEY",
    "HALO_RECEIPTS_MODULE",
    "HALO_RECEIPTS_CONTRACT_VERSION",
    "ELI_FACT_MIN_EVIDENCE_CHARS",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch) -> Path:
    """Clear halo_eli env vars and route HALO_ELI_HOME to a temp dir."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / ".halo_eli"
    monkeypatch.setenv("HALO_ELI_HOME", str(home))
    monkeypatch.setenv("HALO_ELI_LOG_LEVEL", "CRITICAL")
    reset_contract_cache()
    yield home
    reset_contract_cache()


@pytest.fixture
def keypair():
    """(private PKCS8 PEM, public SPKI PEM)."""
    return generate_keypair_pem()
