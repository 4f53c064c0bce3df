from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

DEFAULT_CONFIG_PATH = "config.toml"
CONFIG_ENV_VAR = "SHIRUREXPRESS_CONFIG"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


@dataclass(frozen=True)
class BusinessConfig:
    platform_fee_rate: Decimal = Decimal("0.01")
    delivery_base_fee: Decimal = Decimal("18")
    delivery_per_km_fee: Decimal = Decimal("9")
    # used when either end of the delivery has no coordinates
    flat_delivery_fee: Decimal = Decimal("24.50")
    road_distance_factor: float = 1.2
    rider_radius_km: float = 10.0
    delivery_otp_length: int = 4
    service_otp_length: int = 6
    service_otp_ttl_minutes: int = 10
    currency: str = "INR"


@dataclass(frozen=True)
class PaymentConfig:
    key_id: str = ""
    key_secret: str = ""
    base_url: str = "https://api.razorpay.com/v1"
    timeout: float = 15.0


@dataclass(frozen=True)
class SmsConfig:
    enabled: bool = False
    api_url: str = ""
    api_key: str = ""
    timeout: float = 5.0


@dataclass(frozen=True)
class WebConfig:
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    secret_key: str = "change-this-secret-key-in-production"


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    db: DbConfig
    business: BusinessConfig = field(default_factory=BusinessConfig)
    payment: PaymentConfig = field(default_factory=PaymentConfig)
    sms: SmsConfig = field(default_factory=SmsConfig)
    web: WebConfig = field(default_factory=WebConfig)


def config_path_from_env() -> str:
    return os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)


def _bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data["app"]
        db = data["db"]
        business = data.get("business", {})
        payment = data.get("payment", {})
        sms = data.get("sms", {})
        web = data.get("web", {})
        defaults = BusinessConfig()
        return AppConfig(
            name=str(app.get("name", "Shirur Express")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            ),
            business=BusinessConfig(
                platform_fee_rate=Decimal(str(business.get("platform_fee_rate", defaults.platform_fee_rate))),
                delivery_base_fee=Decimal(str(business.get("delivery_base_fee", defaults.delivery_base_fee))),
                delivery_per_km_fee=Decimal(str(business.get("delivery_per_km_fee", defaults.delivery_per_km_fee))),
                flat_delivery_fee=Decimal(str(business.get("flat_delivery_fee", defaults.flat_delivery_fee))),
                road_distance_factor=float(business.get("road_distance_factor", defaults.road_distance_factor)),
                rider_radius_km=float(business.get("rider_radius_km", defaults.rider_radius_km)),
                delivery_otp_length=int(business.get("delivery_otp_length", defaults.delivery_otp_length)),
                service_otp_length=int(business.get("service_otp_length", defaults.service_otp_length)),
                service_otp_ttl_minutes=int(
                    business.get("service_otp_ttl_minutes", defaults.service_otp_ttl_minutes)
                ),
                currency=str(business.get("currency", defaults.currency)),
            ),
            payment=PaymentConfig(
                key_id=str(payment.get("key_id", "")),
                key_secret=str(payment.get("key_secret", "")),
                base_url=str(payment.get("base_url", "https://api.razorpay.com/v1")).rstrip("/"),
                timeout=float(payment.get("timeout", 15.0)),
            ),
            sms=SmsConfig(
                enabled=_bool(sms.get("enabled", False)),
                api_url=str(sms.get("api_url", "")),
                api_key=str(sms.get("api_key", "")),
                timeout=float(sms.get("timeout", 5.0)),
            ),
            web=WebConfig(
                host=str(web.get("host", "127.0.0.1")),
                port=int(web.get("port", 5000)),
                debug=_bool(web.get("debug", False)),
                secret_key=str(web.get("secret_key", "change-this-secret-key-in-production")),
            ),
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e
