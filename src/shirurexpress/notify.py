from __future__ import annotations

import logging

import requests

from .config import SmsConfig

log = logging.getLogger(__name__)


class SmsNotifier:
    """Best-effort SMS sender. A failed send never fails the caller."""

    def __init__(self, cfg: SmsConfig, http: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.http = http or requests.Session()

    def send_otp(self, phone: str, otp: str) -> bool:
        if not self.cfg.enabled:
            log.info("SMS disabled, OTP for %s not sent", _mask(phone))
            return False
        payload = {"route": "otp", "variables_values": otp, "numbers": phone}
        headers = {"authorization": self.cfg.api_key}
        try:
            response = self.http.post(self.cfg.api_url, data=payload, headers=headers, timeout=self.cfg.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            log.warning("SMS to %s failed: %s", _mask(phone), e)
            return False
        log.info("OTP SMS sent to %s", _mask(phone))
        return True


def _mask(phone: str) -> str:
    phone = phone or ""
    return "*" * max(len(phone) - 4, 0) + phone[-4:]
