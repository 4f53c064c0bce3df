"""Payment gateway client (Razorpay orders API).

Only two calls are needed: create a gateway order for an amount in paise, and
verify the signature the checkout hands back after the customer pays.
"""
from __future__ import annotations

import hashlib
import hmac
import logging

import requests

from .config import PaymentConfig
from .errors import PaymentGatewayError

log = logging.getLogger(__name__)


class RazorpayGateway:
    def __init__(self, cfg: PaymentConfig, http: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.http = http or requests.Session()

    def create_order(self, *, amount_paise: int, currency: str, receipt: str, notes: dict | None = None) -> dict:
        if amount_paise <= 0:
            raise PaymentGatewayError("Amount must be positive.")
        if not self.cfg.key_id or not self.cfg.key_secret:
            raise PaymentGatewayError("Payment service not configured.")

        payload = {
            "amount": int(amount_paise),
            "currency": currency,
            "receipt": receipt,
            "notes": {k: str(v) for k, v in (notes or {}).items()},
        }
        try:
            response = self.http.post(
                f"{self.cfg.base_url}/orders",
                json=payload,
                auth=(self.cfg.key_id, self.cfg.key_secret),
                timeout=self.cfg.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            log.error("Gateway order creation failed for receipt=%s: %s", receipt, e)
            raise PaymentGatewayError("Payment gateway is unavailable, try again.") from e
        except ValueError as e:
            raise PaymentGatewayError("Payment gateway returned an invalid response.") from e

        if "id" not in data:
            raise PaymentGatewayError("Payment gateway response has no order id.")
        log.info("Gateway order %s created for receipt=%s", data["id"], receipt)
        return data

    def expected_signature(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
        return hmac.new(self.cfg.key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        if not self.cfg.key_secret or not signature:
            return False
        expected = self.expected_signature(gateway_order_id, gateway_payment_id)
        return hmac.compare_digest(expected, signature)
