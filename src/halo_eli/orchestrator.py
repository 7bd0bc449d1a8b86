"""
Single-prompt pipeline: invoke -> sign -> verify -> tag -> validate.

``invoke_llm`` is injected so the same wiring runs against a stub in tests
and a real provider client elsewhere.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from halo_eli.claims import Ledger, ValidationResult
from halo_eli.policy import EliPolicy
from halo_eli.receipt import Receipt, ReceiptVerifyResult, sign_response, verify_receipt
from halo_eli.tagger import tag_response
from halo_eli.validator import validate_ledger

logger = logging.getLogger("halo_eli.orchestrator")

LLMInvoker = Callable[[str], str]


@dataclass
class OrchestrationResult:
    prompt: str
    llm_response: str
    receipt: Receipt
    verification: ReceiptVerifyResult
    ledger: Ledger
    validation: ValidationResult

    @property
    def ok(self) -> bool:
        return self.verification.valid and self.validation.passed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "llmResponse": self.llm_response,
            "receipt": self.receipt.model_dump(),
            "verification": self.verification.to_dict(),
            "ledger": self.ledger.to_dict(),
            "validation": self.validation.to_dict(),
        }


def run_pipeline(
    prompt: str,
    invoke_llm: LLMInvoker,
    signing_key: Optional[Union[str, bytes]] = None,
    *,
    policy: Optional[EliPolicy] = None,
) -> OrchestrationResult:
    """Run one prompt through the whole chain; exceptions from ``invoke_llm`` propagate."""
    llm_response = invoke_llm(prompt)

    receipt = sign_response(llm_response, signing_key)
    verification = verify_receipt(receipt, signing_key)
    if not verification.valid:
        logger.warning("fresh receipt %s failed verification: %s", receipt.id, verification.reason)

    ledger = tag_response(llm_response, policy=policy)
    validation = validate_ledger(ledger, llm_response, policy=policy)
    logger.info(
        "pipeline done: %d claims, %d violations", len(ledger.claims), len(validation.violations)
    )

    return OrchestrationResult(
        prompt=prompt,
        llm_response=llm_response,
        receipt=receipt,
        verification=verification,
        ledger=ledger,
        validation=validation,
    )


__all__ = ["LLMInvoker", "OrchestrationResult", "run_pipeline"]
