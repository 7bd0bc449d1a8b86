"""
Transcript normalization for upstream (Valet) receipts.

Upstream producers have shipped several receipt shapes over time:

    {"messages": [...]}                          chat transcript
    {"transcript": {"messages": [...]}}          nested transcript
    {"conversation": [...]}                      conversation log
    {"prompt": "...", "completion": "..."}       prompt/completion pair
    {"request": {...}, "response": {...}}        request/response objects

All of them normalize to one canonical shape:

    {"messages": [{"role", "content"}...], "model", "created_at", "inputs"?}

Normalization never raises on a dict: unavailable fields become "unknown"
and unusable message entries are dropped.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

JsonRecord = Dict[str, Any]

UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Tolerant accessors
# ---------------------------------------------------------------------------

def as_record(value: Any) -> Optional[JsonRecord]:
    return value if isinstance(value, dict) else None


def as_string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _first_string(*values: Any) -> Optional[str]:
    for value in values:
        text = as_string(value)
        if text is not None:
            return text
    return None


def as_message_array(value: Any) -> Optional[List[Dict[str, str]]]:
    """Coerce a list of message-like dicts into ``{"role", "content"}`` dicts."""
    if not isinstance(value, list):
        return None
    items: List[Dict[str, str]] = []
    for entry in value:
        record = as_record(entry)
        if record is None:
            continue
        role = _first_string(record.get("role"), record.get("speaker"), record.get("author")) or "assistant"
        content = _first_string(record.get("content"), record.get("text"), record.get("message")) or ""
        if content:
            items.append({"role": role, "content": content})
    return items or None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_to_transcript(receipt: JsonRecord) -> JsonRecord:
    """Normalize any known upstream receipt shape to the canonical transcript."""
    receipt = as_record(receipt) or {}
    request = as_record(receipt.get("request")) or {}
    response = as_record(receipt.get("response")) or {}
    nested = as_record(receipt.get("transcript")) or {}

    messages = (
        as_message_array(receipt.get("messages"))
        or as_message_array(nested.get("messages"))
        or as_message_array(receipt.get("conversation"))
    )

    if not messages:
        prompt = _first_string(
            receipt.get("prompt"),
            receipt.get("input"),
            request.get("prompt"),
            request.get("input"),
        )
        completion = _first_string(
            receipt.get("completion"),
            receipt.get("output"),
            response.get("text"),
            response.get("output_text"),
            (as_record(receipt.get("result")) or {}).get("text"),
        )
        messages = []
        if prompt:
            messages.append({"role": "user", "content": prompt})
        if completion:
            messages.append({"role": "assistant", "content": completion})

    transcript: JsonRecord = {
        "messages": messages,
        "model": _first_string(
            receipt.get("model"), request.get("model"), response.get("model")
        ) or UNKNOWN,
        "created_at": _first_string(
            receipt.get("created_at"), receipt.get("timestamp"), response.get("created_at")
        ) or UNKNOWN,
    }

    inputs = (
        as_record(receipt.get("inputs"))
        or as_record(receipt.get("request"))
        or as_record(nested.get("inputs"))
    )
    if inputs:
        transcript["inputs"] = inputs

    return transcript


def extract_assistant_text(transcript: JsonRecord) -> str:
    """Join the assistant-authored message contents with newlines."""
    messages = as_message_array((as_record(transcript) or {}).get("messages")) or []
    return "\n".join(
        m["content"] for m in messages if m["role"].lower() == "assistant"
    )


def read_upstream_signature(receipt: JsonRecord) -> Optional[str]:
    """
    Locate the upstream HMAC signature.

    Precedence: ``hmac``; ``signature`` unless ``signature_type`` names a
    non-HMAC scheme; ``receipt_signature``; ``verification.hmac``;
    ``verification.signature``.
    """
    receipt = as_record(receipt) or {}
    verification = as_record(receipt.get("verification")) or {}

    direct_hmac = as_string(receipt.get("hmac"))
    if direct_hmac:
        return direct_hmac

    direct_signature = as_string(receipt.get("signature"))
    signature_type = as_string(receipt.get("signature_type"))
    if direct_signature and (signature_type is None or "hmac" in signature_type.lower()):
        return direct_signature

    return _first_string(
        receipt.get("receipt_signature"),
        verification.get("hmac"),
        verification.get("signature"),
    )


def read_transcript_hash_field(receipt: JsonRecord) -> Optional[str]:
    receipt = as_record(receipt) or {}
    return _first_string(
        receipt.get("transcript_hash"),
        receipt.get("content_hash"),
        (as_record(receipt.get("verification")) or {}).get("transcript_hash"),
    )


__all__ = [
    "UNKNOWN",
    "as_record",
    "as_string",
    "as_message_array",
    "normalize_to_transcript",
    "extract_assistant_text",
    "read_upstream_signature",
    "read_transcript_hash_field",
]
