# factopay_app/services/signatures.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import hashlib
import hmac
from typing import NamedTuple, Optional, Union

from ..errors import SignatureInvalid


class SignatureCheck(NamedTuple):
    ok: bool
    reason: Optional[str] = None


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, (bytes, bytearray)) else str(value).encode("utf-8")


def compute_signature(secret: Union[str, bytes], message: Union[str, bytes]) -> str:
    """HMAC-SHA256 hex digest, the format Razorpay sends."""
    return hmac.new(_as_bytes(secret), _as_bytes(message), hashlib.sha256).hexdigest()


def _compare(secret, message, signature) -> SignatureCheck:
    if not secret:
        return SignatureCheck(False, "missing_secret")
    if not signature:
        return SignatureCheck(False, "missing_signature")
    expected = compute_signature(secret, message)
    if not hmac.compare_digest(expected.encode("ascii"), _as_bytes(signature).strip()):
        return SignatureCheck(False, "signature_mismatch")
    return SignatureCheck(True)


def verify_payment_signature(secret, gateway_order_id: str, gateway_payment_id: str,
                             signature: Optional[str]) -> SignatureCheck:
    """Checkout handler signature: HMAC(key_secret, "<order_id>|<payment_id>")."""
    if not gateway_order_id or not gateway_payment_id:
        return SignatureCheck(False, "missing_reference")
    return _compare(secret, f"{gateway_order_id}|{gateway_payment_id}", signature)


def verify_webhook_signature(secret, raw_body: bytes, signature: Optional[str]) -> SignatureCheck:
    """X-Razorpay-Signature: HMAC(webhook_secret, raw request body)."""
    return _compare(secret, raw_body or b"", signature)


def require_valid(check: SignatureCheck, **extra) -> None:
    if not check.ok:
        raise SignatureInvalid(check.reason or "signature_mismatch", **extra)
