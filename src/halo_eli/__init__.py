"""
halo_eli: Signed receipts and epistemic claim ledgers for LLM output.

- Tag a response into a ledger of FACT / INFERENCE / ASSERTION / OPINION claims
- Validate the ledger against its source text (spans, evidence, laundering)
- Sign and verify HMAC receipts for raw responses, fully offline
- Checkpoint upstream receipts into an Ed25519 master receipt + evidence pack
"""

__version__ = "0.4.0"

from .claims import Claim, EpiType, Ledger, ValidationResult, ValidationViolation
from .receipt import Receipt, sign_response, verify_receipt
from .tagger import tag_response
from .validator import validate_ledger

__all__ = [
    "__version__",
    "Claim",
    "EpiType",
    "Ledger",
    "ValidationResult",
    "ValidationViolation",
    "Receipt",
    "sign_response",
    "verify_receipt",
    "tag_response",
    "validate_ledger",
]
