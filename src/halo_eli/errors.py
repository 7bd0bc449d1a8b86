"""
Exception types for caller-side contract errors.

Data-quality problems (bad spans, tampered hashes, unknown HMAC conventions)
are never raised; they come back as result objects. These exceptions cover
defects a caller has to fix: unparseable keys, a drifted receipts contract,
an unusable input directory.
"""
from __future__ import annotations


class HaloEliError(Exception):
    """Base class for halo_eli errors."""


class KeyFormatError(HaloEliError):
    """A PEM key could not be parsed or is not an Ed25519 key."""


class ContractError(HaloEliError):
    """The external receipts contract is missing or incomplete."""


class IngestError(HaloEliError):
    """An ingest directory or receipt file is unusable."""


__all__ = [
    "HaloEliError",
    "KeyFormatError",
    "ContractError",
    "IngestError",
]
