# tests/test_signatures.py
import hashlib
import hmac

import pytest

from factopay_app.errors import SignatureInvalid
from factopay_app.services.signatures import (
    compute_signature, require_valid, verify_payment_signature, verify_webhook_signature,
)

SECRET = "s3cr3t"


def _hmac(secret, msg: bytes) -> str:
    return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()


def test_payment_signature_matches_gateway_format():
    sig = _hmac(SECRET, b"order_abc|pay_xyz")
    assert compute_signature(SECRET, "order_abc|pay_xyz") == sig
    check = verify_payment_signature(SECRET, "order_abc", "pay_xyz", sig)
    assert check.ok and check.reason is None


def test_payment_signature_bound_to_both_ids():
    sig = _hmac(SECRET, b"order_abc|pay_xyz")
    assert verify_payment_signature(SECRET, "order_abc", "pay_other", sig).reason == "signature_mismatch"
    assert verify_payment_signature(SECRET, "order_other", "pay_xyz", sig).reason == "signature_mismatch"


def test_payment_signature_wrong_secret():
    sig = _hmac("another", b"order_abc|pay_xyz")
    assert not verify_payment_signature(SECRET, "order_abc", "pay_xyz", sig).ok


@pytest.mark.parametrize("secret,signature,reason", [
    ("", "abc", "missing_secret"),
    (None, "abc", "missing_secret"),
    (SECRET, "", "missing_signature"),
    (SECRET, None, "missing_signature"),
])
def test_missing_inputs_are_rejected(secret, signature, reason):
    assert verify_webhook_signature(secret, b"{}", signature).reason == reason


def test_missing_references_are_rejected():
    assert verify_payment_signature(SECRET, "", "pay_x", "abc").reason == "missing_reference"


def test_webhook_signature_over_raw_bytes():
    body = b'{"event":"payment.captured","payload":{}}'
    sig = _hmac(SECRET, body)
    assert verify_webhook_signature(SECRET, body, sig).ok
    # same JSON, different bytes
    assert not verify_webhook_signature(SECRET, b'{"event": "payment.captured", "payload": {}}', sig).ok


def test_tampered_body_is_rejected():
    body = b'{"event":"payment.captured","amount":100}'
    sig = _hmac(SECRET, body)
    tampered = body.replace(b"100", b"1")
    assert verify_webhook_signature(SECRET, tampered, sig).reason == "signature_mismatch"


def test_non_hex_signature_does_not_blow_up():
    assert not verify_webhook_signature(SECRET, b"{}", "zzz-not-hex-é").ok


def test_require_valid_raises_with_reason():
    check = verify_webhook_signature(SECRET, b"{}", "deadbeef")
    with pytest.raises(SignatureInvalid) as exc:
        require_valid(check, orderId=7)
    assert exc.value.reason == "signature_mismatch"
    assert exc.value.to_dict()["orderId"] == 7
    assert exc.value.status_code == 400
