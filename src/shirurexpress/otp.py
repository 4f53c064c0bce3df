from __future__ import annotations

import hmac
import secrets


def generate_otp(length: int) -> str:
    if length < 4 or length > 10:
        raise ValueError("OTP length must be between 4 and 10 digits")
    return "".join(secrets.choice("0123456789") for _ in range(length))


def otp_matches(stored: str | None, submitted: str | None) -> bool:
    if not stored or submitted is None:
        return False
    return hmac.compare_digest(stored.encode("ascii"), str(submitted).encode("ascii", "replace"))
