"""
File plumbing for checkpointing an upstream output directory.

Reads ``receipt.json`` (or the first ``receipt*.json``) from the directory,
hashes every regular file for provenance, and writes the checkpoint outputs
to ``<dir>/halo_checkpoint/``. The protocol itself lives in
``halo_eli.protocol`` and never touches the filesystem.
"""
from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from halo_eli.errors import IngestError
from halo_eli.protocol import ProtocolOutcome

logger = logging.getLogger("halo_eli.ingest")

CHECKPOINT_DIRNAME = "halo_checkpoint"
MASTER_RECEIPT_FILE = "master_receipt.json"
EVIDENCE_PACK_FILE = "evidence_pack.json"
PROTOCOL_REPORT_FILE = "protocol_report.json"

_RECEIPT_NAME = re.compile(r"^receipt.*\.json$", re.IGNORECASE)
_GENERATED_PREFIXES = ("master_receipt", "ledger_submission")


def ensure_directory(path: Path) -> Path:
    path = Path(path)
    if not path.is_dir():
        raise IngestError(f"Input path is not a directory: {path}")
    return path


def collect_source_files(directory: Path) -> List[Dict[str, str]]:
    """``[{"file", "sha256"}]`` for every regular file, sorted by name."""
    directory = ensure_directory(directory)
    files = []
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if not entry.is_file():
            continue
        files.append({"file": entry.name, "sha256": hashlib.sha256(entry.read_bytes()).hexdigest()})
    return files


def pick_receipt_file(files: List[Dict[str, str]]) -> Optional[Dict[str, str]]:
    """Prefer ``receipt.json``; else the first ``receipt*.json`` that we did not generate."""
    for entry in files:
        if entry["file"].lower() == "receipt.json":
            return entry
    candidates = [f for f in files if _RECEIPT_NAME.match(f["file"])]
    upstream = [f for f in candidates if not f["file"].startswith(_GENERATED_PREFIXES)]
    if upstream:
        return upstream[0]
    return candidates[0] if candidates else None


def read_json_object(path: Path) -> Dict[str, Any]:
    path = Path(path)
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise IngestError(f"Cannot read JSON from {path}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise IngestError(f"Expected JSON object in {path}")
    return parsed


def _write_json(path: Path, data: Dict[str, Any]) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def write_checkpoint_outputs(outcome: ProtocolOutcome, output_dir: Path) -> List[Path]:
    """
    Write the protocol report, plus master/evidence when a checkpoint exists.

    Returns the paths written.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    if outcome.master_receipt is not None and outcome.evidence_pack is not None:
        master_path = output_dir / MASTER_RECEIPT_FILE
        evidence_path = output_dir / EVIDENCE_PACK_FILE
        _write_json(master_path, outcome.master_receipt.to_dict())
        _write_json(evidence_path, outcome.evidence_pack.to_dict())
        written.extend([master_path, evidence_path])

    report_path = output_dir / PROTOCOL_REPORT_FILE
    _write_json(report_path, outcome.report.to_dict())
    written.append(report_path)

    logger.info("wrote %d checkpoint file(s) to %s", len(written), output_dir)
    return written


__all__ = [
    "CHECKPOINT_DIRNAME",
    "MASTER_RECEIPT_FILE",
    "EVIDENCE_PACK_FILE",
    "PROTOCOL_REPORT_FILE",
    "ensure_directory",
    "collect_source_files",
    "pick_receipt_file",
    "read_json_object",
    "write_checkpoint_outputs",
]
