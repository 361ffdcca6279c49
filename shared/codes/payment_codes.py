"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway/Network errors (6xxxx)
    GATEWAY_UNREACHABLE = 60001
    SIGNATURE_ERROR = 60002

    # Reconciliation errors (61xxx)
    INVALID_PAYMENT_METHOD = 61000
    PAYMENT_FINALIZED = 61001
    CALLBACK_UNRESOLVED = 61002
    VERIFICATION_FAILED = 61003


# Gateway status -> reconciliation outcome ("success" / "failure").
# Statuses not listed leave the order untouched.
PROVIDER_STATUS_TO_INTERNAL = {
    "esewa": {
        "COMPLETE": "success",
        "CANCELED": "failure",
    },
}

# Status values a success redirect may carry that still count as paid.
CALLBACK_SUCCESS_STATUSES = {"COMPLETE", "SUCCESS"}
