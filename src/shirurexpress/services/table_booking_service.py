from __future__ import annotations

import logging
from datetime import datetime

from psycopg import Connection

from ..domain import Actor, Role, TableBooking, TableBookingStatus
from ..errors import InvalidTransition, NotEligible, NotFound, ValidationError
from ..lifecycle import TABLE_BOOKING_ROLE_TARGETS, check_table_booking_transition
from ..repositories.provider_repo import ProviderRepository
from ..repositories.table_booking_repo import TableBookingRepository
from .access import require_provider

log = logging.getLogger(__name__)


class TableBookingService:
    def __init__(self, *, table_booking_repo: TableBookingRepository, provider_repo: ProviderRepository) -> None:
        self.table_booking_repo = table_booking_repo
        self.provider_repo = provider_repo

    def create_table_booking(
        self,
        conn: Connection,
        *,
        user_id: int,
        provider_id: int,
        booking_date: datetime,
        time_slot: str,
        number_of_guests: int,
        special_requests: str | None = None,
    ) -> TableBooking:
        time_slot = (time_slot or "").strip()
        if not time_slot:
            raise ValidationError("Time slot cannot be empty.")
        if booking_date is None:
            raise ValidationError("Booking date is required.")
        try:
            number_of_guests = int(number_of_guests)
        except (TypeError, ValueError):
            raise ValidationError("Number of guests must be an integer.") from None
        if number_of_guests <= 0:
            raise ValidationError("Number of guests must be > 0.")
        if self.provider_repo.get(conn, provider_id) is None:
            raise NotFound(f"Provider {provider_id} not found.")

        table_booking_id = self.table_booking_repo.create(
            conn,
            user_id=user_id,
            provider_id=provider_id,
            booking_date=booking_date,
            time_slot=time_slot,
            number_of_guests=number_of_guests,
            special_requests=(special_requests or "").strip() or None,
        )
        log.info("table booking %s created for provider %s", table_booking_id, provider_id)
        return TableBooking.from_row(self.table_booking_repo.get(conn, table_booking_id))

    def get_table_booking(self, conn: Connection, table_booking_id: int, actor: Actor) -> TableBooking:
        row = self.table_booking_repo.get(conn, table_booking_id)
        if row is None:
            raise NotFound(f"Table booking {table_booking_id} not found.")
        tb = TableBooking.from_row(row)
        self._check_access(conn, tb, actor)
        return tb

    def _check_access(self, conn: Connection, tb: TableBooking, actor: Actor) -> None:
        if actor.role is Role.ADMIN:
            return
        if actor.role is Role.CUSTOMER and tb.user_id == actor.user_id:
            return
        if actor.role is Role.PROVIDER:
            if int(require_provider(conn, self.provider_repo, actor.user_id)["id"]) == tb.provider_id:
                return
        raise NotEligible("You cannot access this table booking.")

    def update_status(self, conn: Connection, *, table_booking_id: int, status: str, actor: Actor) -> TableBooking:
        try:
            target = TableBookingStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown table booking status: {status!r}") from None

        tb = self.get_table_booking(conn, table_booking_id, actor)
        if target not in TABLE_BOOKING_ROLE_TARGETS[actor.role]:
            raise NotEligible(f"Role {actor.role.value} cannot set status {target.value}.")
        check_table_booking_transition(tb.status, target)

        row = self.table_booking_repo.transition(
            conn, table_booking_id=tb.id, from_status=tb.status.value, to_status=target.value
        )
        if row is None:
            raise InvalidTransition("Table booking changed since it was read; re-fetch and retry.")
        log.info("table booking %s: %s -> %s", tb.id, tb.status.value, target.value)
        return TableBooking.from_row(row)

    def list_user_table_bookings(self, conn: Connection, user_id: int) -> list[dict]:
        return self.table_booking_repo.list_for_user(conn, user_id)
