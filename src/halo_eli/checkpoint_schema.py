"""
Schema enforcement for checkpoint outputs read back from disk.

master_receipt.json and evidence_pack.json are validated against the
schemas bundled in src/halo_eli/schemas/ before any hashing or signature
work. Missing schema files are an error, never a silent pass.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import referencing
import referencing.jsonschema
from jsonschema import Draft202012Validator

_SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"

MASTER_RECEIPT = "master_receipt"
EVIDENCE_PACK = "evidence_pack"
SCHEMA_NAMES = (MASTER_RECEIPT, EVIDENCE_PACK)

_validators: Dict[str, Draft202012Validator] = {}


def _schema_path(name: str) -> Path:
    return _SCHEMA_DIR / f"{name}.schema.json"


def _validator_for(name: str) -> Draft202012Validator:
    if not _validators:
        missing = [_schema_path(n).name for n in SCHEMA_NAMES if not _schema_path(n).exists()]
        if missing:
            raise FileNotFoundError(
                f"Schema files not found in {_SCHEMA_DIR}: {', '.join(missing)}"
            )
        schemas = {n: json.loads(_schema_path(n).read_text()) for n in SCHEMA_NAMES}
        # evidence_pack $refs definitions in master_receipt by $id
        registry = referencing.Registry().with_resources(
            (schema["$id"], referencing.Resource.from_contents(schema))
            for schema in schemas.values()
        )
        _validators.update(
            (n, Draft202012Validator(schema, registry=registry)) for n, schema in schemas.items()
        )
    return _validators[name]


def schema_errors(name: str, instance: Any) -> List[str]:
    """``"path: message"`` strings for *instance* against schema *name*."""
    validator = _validator_for(name)
    return [
        f"{'.'.join(str(p) for p in error.absolute_path) or '(root)'}: {error.message}"
        for error in sorted(validator.iter_errors(instance), key=lambda e: list(e.path))
    ]


def validate_master_receipt(master: Dict[str, Any]) -> List[str]:
    """Return schema errors for a master receipt (empty = valid)."""
    return schema_errors(MASTER_RECEIPT, master)


def validate_evidence_pack(evidence: Dict[str, Any]) -> List[str]:
    """Return schema errors for an evidence pack (empty = valid)."""
    return schema_errors(EVIDENCE_PACK, evidence)


__all__ = ["schema_errors", "validate_master_receipt", "validate_evidence_pack"]
