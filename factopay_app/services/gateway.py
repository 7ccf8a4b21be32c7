# factopay_app/services/gateway.py
# -*- coding: utf-8 -*-
"""Razorpay client.

Wraps the ``razorpay`` SDK. Built once by ``init_gateway`` when the app
starts (credentials are checked right there) and shared through
``app.extensions["gateway"]``.

Failures are split in two:
- retryable: any transport error from ``requests`` and the SDK's
  ``ServerError`` / ``GatewayError``. Retried with exponential backoff up to
  ``max_attempts``; when attempts run out the caller gets
  ``GatewayError(retryable=False)``.
- fatal: ``BadRequestError`` (bad credentials, malformed request, already
  refunded...). Raised at once.
"""
from __future__ import annotations

import logging
import time

import razorpay
import requests
from flask import current_app
from razorpay.errors import BadRequestError, GatewayError as RazorpayGatewayError, ServerError

from ..errors import GatewayConfigError, GatewayError

DEFAULT_BASE_URL = "https://api.razorpay.com"
RETRYABLE = (requests.RequestException, ServerError, RazorpayGatewayError)


class RazorpayClient:
    def __init__(self, key_id: str, key_secret: str, base_url: str = DEFAULT_BASE_URL,
                 timeout: float = 10.0, max_attempts: int = 3, backoff: float = 0.5,
                 sdk=None, sleep=time.sleep, logger=None):
        if not key_id or not key_secret:
            raise GatewayConfigError(
                "Razorpay is not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        self.key_id = key_id
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.backoff = backoff
        self.sdk = sdk or razorpay.Client(auth=(key_id, key_secret), base_url=base_url.rstrip("/"))
        self._sleep = sleep
        self.log = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config, logger=None, **kwargs) -> "RazorpayClient":
        return cls(
            config.get("RAZORPAY_KEY_ID"),
            config.get("RAZORPAY_KEY_SECRET"),
            base_url=config.get("RAZORPAY_BASE_URL", DEFAULT_BASE_URL),
            timeout=float(config.get("GATEWAY_TIMEOUT", 10)),
            max_attempts=int(config.get("GATEWAY_MAX_ATTEMPTS", 3)),
            backoff=float(config.get("GATEWAY_BACKOFF", 0.5)),
            logger=logger,
            **kwargs,
        )

    # ---------- retry loop ----------
    def _call(self, what: str, fn) -> dict:
        """Runs ``fn(timeout)`` until it answers, fails fatally or attempts run out."""
        last = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(self.timeout)
            except BadRequestError as e:
                raise GatewayError(f"Razorpay rejected {what}: {e}", retryable=False) from e
            except RETRYABLE as e:
                last = e
                self.log.warning("Gateway %s failed (attempt %s/%s): %s: %s",
                                 what, attempt, self.max_attempts, type(e).__name__, e)
                if attempt < self.max_attempts:
                    self._sleep(self.backoff * (2 ** (attempt - 1)))
        raise GatewayError(
            f"Gateway unavailable after {self.max_attempts} attempts ({type(last).__name__}: {last})",
            retryable=False, attempts=self.max_attempts,
        )

    # ---------- API ----------
    def create_order(self, amount: int, currency: str, receipt: str, notes: dict | None = None) -> str:
        """Creates the remote order and returns its id (``order_xxx``).

        Retries resend the same receipt.
        """
        data = {"amount": int(amount), "currency": currency, "receipt": receipt}
        if notes:
            data["notes"] = notes
        order = self._call("order creation", lambda timeout: self.sdk.order.create(data=data, timeout=timeout))
        order_id = (order or {}).get("id")
        if not order_id:
            raise GatewayError("Gateway response without order id", retryable=False)
        self.log.info("Razorpay order %s created for receipt %s (%s %s)", order_id, receipt, amount, currency)
        return order_id

    def _existing_refund(self, payment_id: str, timeout: float) -> dict | None:
        refunds = self.sdk.payment.fetch_multiple_refund(payment_id, timeout=timeout) or {}
        items = refunds.get("items") or []
        return items[0] if items else None

    def refund_payment(self, payment_id: str, amount: int | None = None) -> str:
        """Refunds a captured payment and returns the refund id (``rfnd_xxx``).

        A refund POST is not idempotent: before any retry the payment's
        refunds are listed, and one made by a lost earlier attempt is returned
        instead of refunding again.
        """
        data = {"amount": int(amount)} if amount is not None else {}
        sent = []

        def _refund(timeout):
            if sent:
                done = self._existing_refund(payment_id, timeout)
                if done:
                    self.log.warning("Refund %s for %s found after a failed attempt", done.get("id"), payment_id)
                    return done
            sent.append(True)
            return self.sdk.payment.refund(payment_id, data, timeout=timeout)

        refund = self._call(f"refund of {payment_id}", _refund)
        refund_id = (refund or {}).get("id")
        if not refund_id:
            raise GatewayError("Gateway response without refund id", retryable=False)
        return refund_id


def init_gateway(app, **kwargs):
    """Builds the client at startup; missing credentials abort app creation."""
    app.extensions["gateway"] = RazorpayClient.from_config(app.config, logger=app.logger, **kwargs)
    if not app.config.get("RAZORPAY_WEBHOOK_SECRET"):
        raise GatewayConfigError("RAZORPAY_WEBHOOK_SECRET is not set; webhooks cannot be verified.")
    return app.extensions["gateway"]


def get_gateway() -> RazorpayClient:
    return current_app.extensions["gateway"]
