"""
eSewa request/response signatures.

The gateway signs ``signed_field_names`` in the listed order as
``name=value`` pairs joined by commas, HMAC-SHA256 with the merchant secret,
base64 encoded. The message must match byte for byte or the gateway rejects it.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any, Mapping, Sequence

from domain.common.exceptions import SignatureError


DEFAULT_SIGNED_FIELDS: tuple[str, ...] = ("total_amount", "transaction_uuid", "product_code")


def _require(value: Any, name: str) -> str:
    if value is None:
        raise SignatureError(f"Missing required field: {name}", field=name)
    text = str(value)
    if text == "":
        raise SignatureError(f"Missing required field: {name}", field=name)
    return text


def parse_signed_field_names(raw: str | Sequence[str] | None) -> tuple[str, ...]:
    if raw is None:
        return DEFAULT_SIGNED_FIELDS
    if isinstance(raw, str):
        names = tuple(part.strip() for part in raw.split(",") if part.strip())
    else:
        names = tuple(raw)
    if not names:
        raise SignatureError("signed_field_names is empty", field="signed_field_names")
    return names


def build_signed_message(fields: Mapping[str, Any], signed_field_names: Sequence[str]) -> str:
    """Canonical message for ``signed_field_names`` in the given order."""
    return ",".join(f"{name}={_require(fields.get(name), name)}" for name in signed_field_names)


def _hmac_b64(message: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def sign(total_amount: Any, transaction_uuid: Any, product_code: Any, secret: str) -> str:
    """Signature for an outbound payment request."""
    key = _require(secret, "secret")
    message = build_signed_message(
        {
            "total_amount": total_amount,
            "transaction_uuid": transaction_uuid,
            "product_code": product_code,
        },
        DEFAULT_SIGNED_FIELDS,
    )
    return _hmac_b64(message, key)


def sign_fields(fields: Mapping[str, Any], signed_field_names: Sequence[str], secret: str) -> str:
    key = _require(secret, "secret")
    return _hmac_b64(build_signed_message(fields, signed_field_names), key)


def verify_signature(fields: Mapping[str, Any], secret: str) -> bool:
    """
    Check the ``signature`` carried inside a gateway payload.

    The payload names its own signed fields via ``signed_field_names``.
    Returns False on any missing field or mismatch.
    """
    provided = fields.get("signature")
    if not provided:
        return False
    try:
        names = parse_signed_field_names(fields.get("signed_field_names"))
        expected = sign_fields(fields, names, secret)
    except SignatureError:
        return False
    return hmac.compare_digest(expected, str(provided))
