from __future__ import annotations

import dataclasses
import json
import math
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

__all__ = ["canonicalize", "canonicalize_to_str"]


def canonicalize(obj: Any) -> bytes:
    """
    Serialize *obj* to canonical JSON as UTF-8 bytes.

    Object keys are sorted by UTF-16 code units (the order a JavaScript
    verifier produces with ``Object.keys(...).sort()``), arrays keep their
    order and numbers use the shortest ECMAScript round-trip form.
    """
    return canonicalize_to_str(obj).encode("utf-8")


def canonicalize_to_str(obj: Any) -> str:
    """Return the canonical JSON text for *obj*."""
    return _serialize(obj)


def _serialize(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return _encode_string(value)
    if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        if isinstance(value, Decimal) and not value.is_finite():
            return "null"
        return _encode_number(value)
    if isinstance(value, float):
        # JSON.stringify(NaN) === "null"
        if not math.isfinite(value):
            return "null"
        return _encode_number(value)
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="json"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _serialize(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        items = [(str(key), item) for key, item in value.items()]
        items.sort(key=lambda kv: kv[0].encode("utf-16-be"))
        if not items:
            return "{}"
        serialized = [
            f"{_encode_string(key)}:{_serialize(item)}" for key, item in items
        ]
        return "{" + ",".join(serialized) + "}"
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray, str)):
        return "[" + ",".join(_serialize(item) for item in value) + "]"
    # Anything else is not a JSON value: stringify and encode as a string.
    return _encode_string(str(value))


def _encode_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _encode_number(value: Any) -> str:
    if isinstance(value, bool):
        raise TypeError("booleans are handled separately")
    if isinstance(value, int):
        return str(value)
    dec = value if isinstance(value, Decimal) else Decimal(repr(value))
    if dec == 0:
        return "0"
    sign = "-" if dec.is_signed() else ""
    dec = abs(dec).normalize()
    digits_tuple = dec.as_tuple().digits
    exponent = dec.as_tuple().exponent
    digits = "".join(str(d) for d in digits_tuple) or "0"
    adjusted = len(digits) + exponent - 1
    if -6 <= adjusted <= 20:
        if exponent >= 0:
            return sign + digits + ("0" * exponent)
        integer_digits = max(adjusted + 1, 0)
        if integer_digits > 0:
            int_part = digits[:integer_digits]
            frac_part = digits[integer_digits:]
            return sign + int_part + (("." + frac_part) if frac_part else "")
        zeros = "0" * (-(adjusted + 1))
        return sign + "0." + zeros + digits
    significand = digits[0]
    fractional = digits[1:]
    if fractional:
        significand += "." + fractional
    exp_sign = "+" if adjusted > 0 else "-"
    return f"{sign}{significand}e{exp_sign}{abs(adjusted)}"
