from __future__ import annotations

import logging
import secrets
from decimal import Decimal, InvalidOperation

from psycopg import Connection

from ..domain import CATALOG_KINDS, ServiceProvider
from ..errors import NotFound, ValidationError
from ..pricing import money
from ..repositories.problem_repo import ProblemRepository
from ..repositories.product_repo import ProductRepository
from ..repositories.provider_repo import ProviderRepository
from .access import require_provider

log = logging.getLogger(__name__)


def optional_coordinates(latitude, longitude) -> tuple[float | None, float | None]:
    if latitude is None and longitude is None:
        return None, None
    try:
        latitude, longitude = float(latitude), float(longitude)
    except (TypeError, ValueError):
        raise ValidationError("Latitude and longitude must both be numbers.") from None
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise ValidationError("Coordinates out of range.")
    return latitude, longitude


def _price(value) -> Decimal:
    try:
        price = money(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Price must be a number.") from None
    if price < 0:
        raise ValidationError("Price must be >= 0.")
    return price


def _stock(value) -> int | None:
    # None keeps the item untracked (cooked dishes)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("stock_qty must be an integer.")
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise ValidationError("stock_qty must be an integer.") from None
    if qty < 0:
        raise ValidationError("stock_qty must be >= 0.")
    return qty


def _text(value) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


class ProviderService:
    """Provider onboarding and the provider's own menu / catalog."""

    def __init__(
        self,
        *,
        provider_repo: ProviderRepository,
        product_repo: ProductRepository,
        problem_repo: ProblemRepository,
    ) -> None:
        self.provider_repo = provider_repo
        self.product_repo = product_repo
        self.problem_repo = problem_repo

    # ---- profile ----

    def register_provider(
        self,
        conn: Connection,
        *,
        user_id: int,
        category_slug: str,
        business_name: str,
        address: str,
        description: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> ServiceProvider:
        category_slug = (category_slug or "").strip().lower()
        business_name = (business_name or "").strip()
        address = (address or "").strip()
        if not business_name:
            raise ValidationError("Business name cannot be empty.")
        if not address:
            raise ValidationError("Address cannot be empty.")
        if self.provider_repo.get_category(conn, category_slug) is None:
            raise ValidationError(f"Unknown service category: {category_slug!r}")
        if self.provider_repo.get_by_user_id(conn, user_id) is not None:
            raise ValidationError("This account already has a provider profile.")
        latitude, longitude = optional_coordinates(latitude, longitude)

        provider_id = self.provider_repo.create(
            conn,
            user_id=user_id,
            category_slug=category_slug,
            business_name=business_name,
            address=address,
            description=_text(description),
            latitude=latitude,
            longitude=longitude,
        )
        log.info("provider %s registered by user %s (%s)", provider_id, user_id, category_slug)
        return ServiceProvider.from_row(self.provider_repo.get(conn, provider_id))

    def get_profile(self, conn: Connection, user_id: int) -> ServiceProvider:
        row = self.provider_repo.get_by_user_id(conn, user_id)
        if row is None:
            raise NotFound("Provider profile not found.")
        return ServiceProvider.from_row(row)

    def list_problems(self, conn: Connection, category_slug: str, parent_id: int | None = None) -> list[dict]:
        return self.problem_repo.list_for_category(conn, category_slug, parent_id)

    # ---- menu ----

    def _catalog_provider(self, conn: Connection, provider_user_id: int) -> dict:
        provider = require_provider(conn, self.provider_repo, provider_user_id)
        if provider["category_slug"] not in CATALOG_KINDS:
            raise ValidationError(f"Providers in {provider['category_slug']!r} have no item catalog.")
        return provider

    def list_menu(self, conn: Connection, provider_user_id: int) -> list[dict]:
        provider = require_provider(conn, self.provider_repo, provider_user_id)
        return self.product_repo.list_for_provider(conn, int(provider["id"]))

    def create_menu_item(
        self,
        conn: Connection,
        *,
        provider_user_id: int,
        name: str,
        unit_price,
        sku: str | None = None,
        category: str | None = None,
        unit: str | None = None,
        stock_qty=None,
        is_available: bool = True,
    ) -> dict:
        provider = self._catalog_provider(conn, provider_user_id)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Item name cannot be empty.")
        sku = (sku or "").strip() or f"ITEM-{secrets.token_hex(4).upper()}"

        try:
            product_id = self.product_repo.create(
                conn,
                provider_id=int(provider["id"]),
                kind=provider["category_slug"],
                sku=sku,
                name=name,
                category=_text(category),
                unit=_text(unit),
                unit_price=_price(unit_price),
                stock_qty=_stock(stock_qty),
                is_available=bool(is_available),
            )
        except ValueError as e:
            raise ValidationError(str(e)) from None
        log.info("provider %s added menu item %s (%s)", provider["id"], product_id, sku)
        return self.product_repo.get(conn, product_id)

    def update_menu_item(self, conn: Connection, *, provider_user_id: int, product_id: int, changes: dict) -> dict:
        provider = self._catalog_provider(conn, provider_user_id)
        clean = {}
        if "name" in changes:
            clean["name"] = (changes["name"] or "").strip()
            if not clean["name"]:
                raise ValidationError("Item name cannot be empty.")
        for key in ("category", "unit"):
            if key in changes:
                clean[key] = _text(changes[key])
        if "unit_price" in changes:
            clean["unit_price"] = _price(changes["unit_price"])
        if "stock_qty" in changes:
            clean["stock_qty"] = _stock(changes["stock_qty"])
        if "is_available" in changes:
            if not isinstance(changes["is_available"], bool):
                raise ValidationError("is_available must be true or false.")
            clean["is_available"] = changes["is_available"]

        row = self.product_repo.update(conn, product_id=product_id, provider_id=int(provider["id"]), changes=clean)
        if row is None:
            raise NotFound(f"Menu item {product_id} not found.")
        log.info("provider %s updated menu item %s: %s", provider["id"], product_id, sorted(clean))
        return row

    def delete_menu_item(self, conn: Connection, *, provider_user_id: int, product_id: int) -> str:
        provider = self._catalog_provider(conn, provider_user_id)
        outcome = self.product_repo.delete(conn, product_id=product_id, provider_id=int(provider["id"]))
        if outcome is None:
            raise NotFound(f"Menu item {product_id} not found.")
        log.info("provider %s menu item %s %s", provider["id"], product_id, outcome)
        return outcome
