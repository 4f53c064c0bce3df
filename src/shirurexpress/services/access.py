from __future__ import annotations

from psycopg import Connection

from ..domain import Actor, Role
from ..errors import NotEligible, ValidationError
from ..repositories.provider_repo import ProviderRepository


def require_provider(conn: Connection, provider_repo: ProviderRepository, user_id: int) -> dict:
    provider = provider_repo.get_by_user_id(conn, user_id)
    if provider is None:
        raise NotEligible("No provider profile is linked to this account.")
    return provider


def parse_role(value: str | None) -> Role:
    try:
        return Role((value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {value!r}") from None


def require_role(actor: Actor, *roles: Role) -> None:
    if actor.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise NotEligible(f"This action requires role: {allowed}.")
