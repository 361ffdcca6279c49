"""
Gateway callback payloads as a tagged variant.

eSewa redirects back either with a base64 encoded JSON document under ``data``
or with plain query parameters (``transaction_uuid``, ``status``, ``refId``).
``parse_callback`` picks the variant once; resolution never sniffs shapes again.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union


ENCODED_FIELD = "data"
TRANSACTION_KEYS = ("transaction_uuid",)
REFERENCE_KEYS = ("refId", "ref_id", "transaction_code")


class CallbackDecodeError(ValueError):
    """Encoded payload could not be turned into a JSON object."""


def _first(source: Mapping[str, Any], keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = source.get(key)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return None


@dataclass(frozen=True)
class PlainCallback:
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    reference_id: Optional[str] = None
    total_amount: Optional[str] = None

    @classmethod
    def from_mapping(cls, source: Mapping[str, Any]) -> "PlainCallback":
        amount = source.get("total_amount")
        return cls(
            transaction_id=_first(source, TRANSACTION_KEYS),
            status=_first(source, ("status",)),
            reference_id=_first(source, REFERENCE_KEYS),
            total_amount=str(amount) if amount is not None else None,
        )


@dataclass(frozen=True)
class EncodedCallback:
    data: str
    # plain parameters that arrived next to the encoded field
    params: PlainCallback = field(default_factory=PlainCallback)


CallbackPayload = Union[EncodedCallback, PlainCallback]


def parse_callback(params: Mapping[str, Any]) -> CallbackPayload:
    plain = PlainCallback.from_mapping(params)
    encoded = params.get(ENCODED_FIELD)
    if encoded is not None and str(encoded).strip():
        return EncodedCallback(data=str(encoded).strip(), params=plain)
    return plain


def _b64decode(data: str) -> bytes:
    # query strings turn '+' into ' '; padding is often stripped
    text = data.replace(" ", "+")
    text += "=" * (-len(text) % 4)
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        pass
    try:
        return base64.urlsafe_b64decode(text)
    except (binascii.Error, ValueError) as exc:
        raise CallbackDecodeError("malformed base64") from exc


def decode_payload(data: str) -> dict[str, Any]:
    """
    base64 -> JSON object.

    Numbers are kept as their literal text so a signature over them can be
    recomputed byte for byte.
    """
    raw = _b64decode(data)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CallbackDecodeError("payload is not utf-8") from exc
    try:
        document = json.loads(text, parse_float=str, parse_int=str)
    except json.JSONDecodeError as exc:
        raise CallbackDecodeError("invalid json") from exc
    if not isinstance(document, dict):
        raise CallbackDecodeError("payload is not a json object")
    return document
