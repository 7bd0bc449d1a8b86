"""
Receipts contract loader.

The pipeline signs transcripts through a pluggable backend module. That
module must export a ``HALO_RECEIPTS_CONTRACT`` mapping with callable
``sign_transcript`` and ``verify_transcript_receipt`` members. This is the
only place that imports the backend, so a drifted backend fails here, once,
with a message listing what was found and what is missing.

    HALO_RECEIPTS_MODULE             backend module (default halo_eli.local_receipts)
    HALO_RECEIPTS_CONTRACT_VERSION   expected contract version (default 1.0.0)
"""
from __future__ import annotations

import importlib
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

from halo_eli.errors import ContractError

logger = logging.getLogger("halo_eli.contract")

DEFAULT_RECEIPTS_MODULE = "halo_eli.local_receipts"
DEFAULT_CONTRACT_VERSION = "1.0.0"
CONTRACT_EXPORT = "HALO_RECEIPTS_CONTRACT"
REQUIRED_MEMBERS = ("sign_transcript", "verify_transcript_receipt")


@runtime_checkable
class ReceiptsContract(Protocol):
    """Seam for swapping the transcript receipt backend."""

    contract_version: str

    def sign_transcript(self, transcript: Any) -> Any: ...

    def verify_transcript_receipt(self, transcript: Any, receipt: Any) -> Any: ...


@dataclass(frozen=True)
class LoadedContract:
    """A validated backend, bound to the module it came from."""

    module_name: str
    contract_version: str
    _sign: Callable[..., Any]
    _verify: Callable[..., Any]

    def sign_transcript(self, transcript: Any) -> Any:
        return self._sign(transcript)

    def verify_transcript_receipt(self, transcript: Any, receipt: Any) -> Any:
        return self._verify(transcript, receipt)


_cached: Optional[LoadedContract] = None


def _import_contract_export(module_name: str) -> Mapping[str, Any]:
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as exc:
        raise ContractError(
            "[receipts contract] Backend module not installed.\n"
            f"  Module:   {module_name}\n"
            f"  Fix:      install the package providing {module_name} "
            "or unset HALO_RECEIPTS_MODULE to use the built-in backend."
        ) from exc

    raw = getattr(module, CONTRACT_EXPORT, None)
    if not isinstance(raw, Mapping):
        raise ContractError(
            f"[receipts contract] {CONTRACT_EXPORT} not exported from {module_name}.\n"
            f"  Fix:      export a {CONTRACT_EXPORT} mapping from the module root."
        )
    return raw


def load_receipts_contract(module_name: Optional[str] = None) -> LoadedContract:
    """
    Load and validate the receipts backend.

    Args:
        module_name: Backend module; defaults to ``HALO_RECEIPTS_MODULE`` or
            the built-in backend. An explicit name bypasses the cache.

    Raises:
        ContractError: module missing, export missing, or required members
            missing or not callable.
    """
    global _cached
    if module_name is None and _cached is not None:
        return _cached

    resolved = module_name or os.environ.get("HALO_RECEIPTS_MODULE") or DEFAULT_RECEIPTS_MODULE
    export = _import_contract_export(resolved)

    expected_version = os.environ.get("HALO_RECEIPTS_CONTRACT_VERSION") or DEFAULT_CONTRACT_VERSION

    found = [name for name in REQUIRED_MEMBERS if callable(export.get(name))]
    missing = [name for name in REQUIRED_MEMBERS if name not in found]
    if missing:
        raise ContractError(
            "[receipts contract] Required exports missing or not functions.\n"
            f"  Contract:  {expected_version}\n"
            f"  Found:     {', '.join(found) or '(none)'}\n"
            f"  Missing:   {', '.join(missing)}\n"
            f"  Fix:       pin {resolved} to a version that exports all required functions,\n"
            "             or set HALO_RECEIPTS_CONTRACT_VERSION to match the installed version."
        )

    version = str(export.get("contract_version") or expected_version)
    if version != expected_version:
        logger.warning(
            "receipts contract version %s differs from expected %s", version, expected_version
        )

    contract = LoadedContract(
        module_name=resolved,
        contract_version=version,
        _sign=export["sign_transcript"],
        _verify=export["verify_transcript_receipt"],
    )
    logger.debug("loaded receipts contract %s from %s", version, resolved)
    if module_name is None:
        _cached = contract
    return contract


def reset_contract_cache() -> None:
    """Forget the cached backend (tests, or after changing HALO_RECEIPTS_MODULE)."""
    global _cached
    _cached = None


__all__ = [
    "DEFAULT_RECEIPTS_MODULE",
    "DEFAULT_CONTRACT_VERSION",
    "REQUIRED_MEMBERS",
    "ReceiptsContract",
    "LoadedContract",
    "load_receipts_contract",
    "reset_contract_cache",
]
