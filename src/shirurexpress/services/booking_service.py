from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from psycopg import Connection

from ..config import BusinessConfig
from ..domain import Actor, Booking, BookingStatus, Invoice, Role
from ..errors import InvalidOtp, InvalidTransition, NotEligible, NotFound, OtpExpired, ValidationError
from ..lifecycle import check_booking_transition
from ..notify import SmsNotifier
from ..otp import generate_otp, otp_matches
from ..pricing import money
from ..repositories.booking_repo import BookingRepository
from ..repositories.invoice_repo import InvoiceRepository
from ..repositories.problem_repo import ProblemRepository
from ..repositories.provider_repo import ProviderRepository
from .access import require_provider

log = logging.getLogger(__name__)


def _amount(value, label: str) -> Decimal:
    try:
        amount = money(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.") from None
    if amount < 0:
        raise ValidationError(f"{label} must be >= 0.")
    return amount


def parse_spare_parts(parts) -> list[dict]:
    out = []
    for p in parts or []:
        if not isinstance(p, dict):
            raise ValidationError("Each spare part must be an object with 'part' and 'cost'.")
        name = str(p.get("part") or "").strip()
        if not name:
            raise ValidationError("Spare part name cannot be empty.")
        out.append({"part": name, "cost": _amount(p.get("cost"), f"Cost of {name}")})
    return out


class BookingService:
    def __init__(
        self,
        *,
        booking_repo: BookingRepository,
        invoice_repo: InvoiceRepository,
        provider_repo: ProviderRepository,
        problem_repo: ProblemRepository,
        notifier: SmsNotifier,
        business: BusinessConfig,
    ) -> None:
        self.booking_repo = booking_repo
        self.invoice_repo = invoice_repo
        self.provider_repo = provider_repo
        self.problem_repo = problem_repo
        self.notifier = notifier
        self.business = business

    def create_booking(
        self,
        conn: Connection,
        *,
        user_id: int,
        service_type: str,
        user_address: str,
        user_phone: str,
        provider_id: int | None = None,
        problem_id: int | None = None,
        scheduled_at: datetime | None = None,
        preferred_time_slots: list[str] | None = None,
        notes: str | None = None,
        is_urgent: bool = False,
    ) -> Booking:
        service_type = (service_type or "").strip()
        user_address = (user_address or "").strip()
        user_phone = (user_phone or "").strip()
        if not service_type:
            raise ValidationError("Service type cannot be empty.")
        if not user_address:
            raise ValidationError("Address cannot be empty.")
        if not user_phone:
            raise ValidationError("Phone number cannot be empty.")
        if provider_id is not None and self.provider_repo.get(conn, provider_id) is None:
            raise NotFound(f"Provider {provider_id} not found.")
        if problem_id is not None and self.problem_repo.get(conn, problem_id) is None:
            raise NotFound(f"Problem {problem_id} not found.")

        booking_id = self.booking_repo.create(
            conn,
            user_id=user_id,
            provider_id=provider_id,
            service_type=service_type,
            problem_id=problem_id,
            scheduled_at=scheduled_at,
            preferred_time_slots=list(preferred_time_slots) if preferred_time_slots else None,
            user_address=user_address,
            user_phone=user_phone,
            notes=(notes or "").strip() or None,
            is_urgent=bool(is_urgent),
        )
        log.info("booking %s created by user %s (%s)", booking_id, user_id, service_type)
        return self.get_booking(conn, booking_id)

    def get_booking(self, conn: Connection, booking_id: int) -> Booking:
        row = self.booking_repo.get(conn, booking_id)
        if row is None:
            raise NotFound(f"Booking {booking_id} not found.")
        return Booking.from_row(row)

    def get_booking_detail(self, conn: Connection, booking_id: int, actor: Actor) -> dict:
        booking = self.get_booking(conn, booking_id)
        self._check_access(conn, booking, actor)
        row = self.invoice_repo.get_by_booking(conn, booking.id)
        invoice = Invoice.from_row(row) if row else None
        return {"booking": booking, "invoice": invoice}

    def get_invoice(self, conn: Connection, invoice_id: int, actor: Actor) -> Invoice:
        row = self.invoice_repo.get(conn, invoice_id)
        if row is None:
            raise NotFound(f"Invoice {invoice_id} not found.")
        invoice = Invoice.from_row(row)
        if actor.role is Role.CUSTOMER and invoice.user_id != actor.user_id:
            raise NotFound(f"Invoice {invoice_id} not found.")
        if actor.role is Role.PROVIDER:
            provider = require_provider(conn, self.provider_repo, actor.user_id)
            if int(provider["id"]) != invoice.provider_id:
                raise NotFound(f"Invoice {invoice_id} not found.")
        if actor.role is Role.RIDER:
            raise NotEligible("Riders cannot read invoices.")
        return invoice

    def list_user_bookings(self, conn: Connection, user_id: int) -> list[dict]:
        return self.booking_repo.list_for_user(conn, user_id)

    def list_provider_bookings(self, conn: Connection, provider_user_id: int) -> list[dict]:
        provider = require_provider(conn, self.provider_repo, provider_user_id)
        return self.booking_repo.list_for_provider(conn, int(provider["id"]))

    def _check_access(self, conn: Connection, booking: Booking, actor: Actor) -> None:
        if actor.role is Role.ADMIN:
            return
        if actor.role is Role.CUSTOMER and booking.user_id == actor.user_id:
            return
        if actor.role is Role.PROVIDER:
            provider = require_provider(conn, self.provider_repo, actor.user_id)
            # an unassigned pending booking is open to every provider
            if booking.provider_id in (None, int(provider["id"])):
                return
        raise NotEligible("You cannot access this booking.")

    def _assigned_provider(self, conn: Connection, booking: Booking, provider_user_id: int) -> int:
        provider_id = int(require_provider(conn, self.provider_repo, provider_user_id)["id"])
        if booking.provider_id != provider_id:
            raise NotEligible("This booking is assigned to another provider.")
        return provider_id

    def _move(self, conn: Connection, booking: Booking, target: BookingStatus) -> Booking:
        check_booking_transition(booking.status, target)
        row = self.booking_repo.transition(
            conn, booking_id=booking.id, from_status=booking.status.value, to_status=target.value
        )
        if row is None:
            raise InvalidTransition("Booking status changed since it was read; re-fetch and retry.")
        log.info("booking %s: %s -> %s", booking.id, booking.status.value, target.value)
        return Booking.from_row(row)

    def accept_booking(
        self, conn: Connection, *, booking_id: int, provider_user_id: int, estimated_cost=None
    ) -> Booking:
        booking = self.get_booking(conn, booking_id)
        provider_id = int(require_provider(conn, self.provider_repo, provider_user_id)["id"])
        if booking.status is not BookingStatus.PENDING:
            raise InvalidTransition(f"Booking is {booking.status.value}; only pending bookings can be accepted.")
        if booking.provider_id not in (None, provider_id):
            raise NotEligible("This booking is assigned to another provider.")
        cost = _amount(estimated_cost, "Estimated cost") if estimated_cost is not None else None

        row = self.booking_repo.accept(conn, booking_id=booking_id, provider_id=provider_id, estimated_cost=cost)
        if row is None:
            raise InvalidTransition("Booking was taken or changed since it was read; re-fetch and retry.")
        log.info("booking %s accepted by provider %s", booking_id, provider_id)
        return Booking.from_row(row)

    def decline_booking(self, conn: Connection, *, booking_id: int, provider_user_id: int) -> Booking:
        booking = self.get_booking(conn, booking_id)
        provider_id = int(require_provider(conn, self.provider_repo, provider_user_id)["id"])
        if booking.status is not BookingStatus.PENDING:
            raise InvalidTransition(f"Booking is {booking.status.value}; only pending bookings can be declined.")
        if booking.provider_id not in (None, provider_id):
            raise NotEligible("This booking is assigned to another provider.")
        return self._move(conn, booking, BookingStatus.DECLINED)

    def cancel_booking(self, conn: Connection, *, booking_id: int, actor: Actor) -> Booking:
        booking = self.get_booking(conn, booking_id)
        if actor.role is not Role.ADMIN and not (actor.role is Role.CUSTOMER and booking.user_id == actor.user_id):
            raise NotEligible("Only the customer who made the booking can cancel it.")
        return self._move(conn, booking, BookingStatus.CANCELLED)

    def start_service(self, conn: Connection, *, booking_id: int, provider_user_id: int) -> Booking:
        booking = self.get_booking(conn, booking_id)
        self._assigned_provider(conn, booking, provider_user_id)
        return self._move(conn, booking, BookingStatus.IN_PROGRESS)

    def update_status(
        self, conn: Connection, *, booking_id: int, status: str, actor: Actor, estimated_cost=None
    ) -> Booking:
        try:
            target = BookingStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown booking status: {status!r}") from None

        if target is BookingStatus.CANCELLED:
            return self.cancel_booking(conn, booking_id=booking_id, actor=actor)
        if actor.role is not Role.PROVIDER:
            raise NotEligible(f"Role {actor.role.value} cannot set status {target.value}.")
        if target is BookingStatus.ACCEPTED:
            return self.accept_booking(
                conn, booking_id=booking_id, provider_user_id=actor.user_id, estimated_cost=estimated_cost
            )
        if target is BookingStatus.DECLINED:
            return self.decline_booking(conn, booking_id=booking_id, provider_user_id=actor.user_id)
        if target is BookingStatus.IN_PROGRESS:
            return self.start_service(conn, booking_id=booking_id, provider_user_id=actor.user_id)
        if target is BookingStatus.AWAITING_OTP:
            return self.issue_service_otp(conn, booking_id=booking_id, provider_user_id=actor.user_id)
        # awaiting_billing, pending_payment and completed have their own operations
        raise InvalidTransition(f"Status {target.value} is reached through its own operation.")

    def issue_service_otp(self, conn: Connection, *, booking_id: int, provider_user_id: int) -> Booking:
        booking = self.get_booking(conn, booking_id)
        self._assigned_provider(conn, booking, provider_user_id)
        if booking.status not in (BookingStatus.IN_PROGRESS, BookingStatus.AWAITING_OTP):
            raise InvalidTransition(f"Booking is {booking.status.value}; the service has not been started.")

        otp = generate_otp(self.business.service_otp_length)
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=self.business.service_otp_ttl_minutes)
        row = self.booking_repo.set_service_otp(
            conn, booking_id=booking_id, from_status=booking.status.value, otp=otp, expires_at=expires_at
        )
        if row is None:
            raise InvalidTransition("Booking status changed since it was read; re-fetch and retry.")
        log.info("booking %s: service OTP issued", booking_id)
        self.notifier.send_otp(booking.user_phone, otp)
        return Booking.from_row(row)

    def verify_service_otp(
        self, conn: Connection, *, booking_id: int, provider_user_id: int, otp: str
    ) -> tuple[Booking, Invoice | None]:
        booking = self.get_booking(conn, booking_id)
        self._assigned_provider(conn, booking, provider_user_id)
        if booking.status is not BookingStatus.AWAITING_OTP:
            raise InvalidTransition(f"Booking is {booking.status.value}; no OTP is pending.")
        if not otp_matches(booking.service_otp, otp):
            log.warning("booking %s: wrong service OTP", booking_id)
            raise InvalidOtp("Invalid OTP.")
        if booking.service_otp_expires_at is None or datetime.now(timezone.utc) > booking.service_otp_expires_at:
            raise OtpExpired("OTP has expired, request a new one.")

        row = self.booking_repo.confirm_service_otp(conn, booking_id=booking_id, otp=booking.service_otp)
        if row is None:
            raise InvalidTransition("Booking status changed since it was read; re-fetch and retry.")
        booking = Booking.from_row(row)
        log.info("booking %s: service OTP verified", booking_id)

        # a zero estimate is billed by hand through create_invoice
        if booking.estimated_cost is None or booking.estimated_cost <= 0:
            return booking, None
        invoice = self._issue_invoice(conn, booking, service_charge=money(booking.estimated_cost), spare_parts=[])
        return self.get_booking(conn, booking_id), invoice

    def create_invoice(
        self,
        conn: Connection,
        *,
        booking_id: int,
        provider_user_id: int,
        service_charge,
        spare_parts=None,
    ) -> Invoice:
        booking = self.get_booking(conn, booking_id)
        self._assigned_provider(conn, booking, provider_user_id)
        if booking.status is not BookingStatus.AWAITING_BILLING:
            raise InvalidTransition(f"Booking is {booking.status.value}; it is not ready for billing.")
        return self._issue_invoice(
            conn,
            booking,
            service_charge=_amount(service_charge, "Service charge"),
            spare_parts=parse_spare_parts(spare_parts),
        )

    def _issue_invoice(
        self, conn: Connection, booking: Booking, *, service_charge: Decimal, spare_parts: list[dict]
    ) -> Invoice:
        parts_total = money(sum((p["cost"] for p in spare_parts), Decimal("0")))
        total = service_charge + parts_total
        if total <= 0:
            raise ValidationError("Invoice total must be greater than zero.")
        try:
            invoice_id = self.invoice_repo.create(
                conn,
                booking_id=booking.id,
                provider_id=booking.provider_id,
                user_id=booking.user_id,
                spare_parts=spare_parts,
                spare_parts_total=parts_total,
                service_charge=service_charge,
                total_amount=total,
            )
        except ValueError:
            raise InvalidTransition("An invoice already exists for this booking.") from None
        if self.booking_repo.attach_invoice(conn, booking_id=booking.id, invoice_id=invoice_id) is None:
            raise InvalidTransition("Booking status changed since it was read; re-fetch and retry.")
        log.info("booking %s: invoice %s issued for %s", booking.id, invoice_id, total)
        return Invoice.from_row(self.invoice_repo.get(conn, invoice_id))
