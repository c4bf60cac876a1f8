"""
Reservation lifecycle engine.

State machine (see models/enums.py for the table):

    pending ──> confirmed ──> checked_in
       │            │ ├─────> no_show ──> refunded
       │            │ └─────> canceled ─> refunded
       └──────────────────────> canceled

Capacity accounting
===================

  - Confirm claims all tickets of a reservation in ONE conditional UPDATE on
    the event (see event_service.increment_registered_count). Either every
    ticket is counted or none is, so there is no partially-confirmed state.
  - Cancel of a confirmed reservation releases the same number of spots.
    Canceling a pending reservation releases nothing: it never claimed any.
  - No-show forfeits the spots (nothing released); refund never touches
    capacity.

Status changes are conditional UPDATEs as well (`... WHERE status = :from`).
The status read at the start of a request may be stale by the time it
writes; only the request whose UPDATE matches moves the counter, so two
overlapping cancels release the spots once. Confirm claims the status before
the spots and hands it back if the event is full.

Create runs insert(pending) + confirm as one logical operation. If the
confirmation loses the race for the last spots, the pending row is deleted
before the error propagates, so the caller only ever sees a confirmed
reservation or a failure.
"""

import secrets
import time
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from planora.core.config import get_settings
from planora.core.errors import ConflictError, DomainError, ForbiddenError, InvalidStateError, NotFoundError
from planora.core.logging import get_logger
from planora.core.metrics import record_reservation_attempt, record_transition, reservation_latency
from planora.core.security import Principal
from planora.db.base import utcnow
from planora.models.enums import EventStatus, ReservationStatus, can_transition_reservation
from planora.models.event import Event
from planora.models.reservation import Reservation
from planora.services import event_service, reservation_store
from planora.services.reservation_store import ReservationFilter, ReservationPage

logger = get_logger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_reservation_number() -> str:
    """PREFIX-<base36 epoch millis>-<8 random hex chars>, e.g. RES-MB1X2K3Q-9F3A01BC."""
    settings = get_settings()
    timestamp = _to_base36(time.time_ns() // 1_000_000)
    return f"{settings.RESERVATION_NUMBER_PREFIX}-{timestamp}-{secrets.token_hex(4).upper()}"


def generate_qr_code(reservation_number: str) -> str:
    """Opaque door-scan lookup token, distinct from the encoded QR payload."""
    settings = get_settings()
    return f"{settings.QR_CODE_PREFIX}-{reservation_number}-{secrets.token_hex(4).upper()}"


async def _transition(
    db: AsyncSession,
    reservation: Reservation,
    target: ReservationStatus,
    message: str,
    **values,
) -> ReservationStatus:
    """
    Claim `reservation.status -> target` with a conditional UPDATE. Of several
    overlapping requests for the same row only one matches; the others fail
    with `message` and change nothing. Returns the status that was replaced.
    """
    current = reservation.status
    if not can_transition_reservation(current, target):
        raise InvalidStateError(message)
    if not await reservation_store.transition(db, reservation.id, current, target, **values):
        logger.warning(
            "reservation_transition_lost",
            reservation_id=reservation.id,
            expected=current.value,
            target=target.value,
        )
        raise InvalidStateError(message)
    record_transition(current.value, target.value)
    return current


def _validate_event_for_reservation(event: Event) -> None:
    if event.status != EventStatus.PUBLISHED:
        raise InvalidStateError("Reservations are only possible for published events")
    if event.start_date <= utcnow():
        raise InvalidStateError("Cannot reserve for an event that has started or ended")


def _check_capacity(event: Event, number_of_tickets: int) -> None:
    available = event.available_spots
    if available < number_of_tickets:
        logger.warning(
            "reservation_rejected_capacity",
            event_id=event.id,
            requested=number_of_tickets,
            available=available,
        )
        raise ConflictError(event_service.capacity_conflict_message(available))


async def create_reservation(
    db: AsyncSession,
    event_id: int,
    principal: Principal,
    number_of_tickets: int = 1,
) -> Reservation:
    """
    Reserve `number_of_tickets` spots for the principal and confirm at once.
    """
    settings = get_settings()
    started = time.perf_counter()

    if not 1 <= number_of_tickets <= settings.RESERVATION_MAX_TICKETS:
        raise InvalidStateError(
            f"A reservation holds between 1 and {settings.RESERVATION_MAX_TICKETS} tickets"
        )

    try:
        event = await event_service.get_event(db, event_id)
        _validate_event_for_reservation(event)
        _check_capacity(event, number_of_tickets)

        if await reservation_store.find_active(db, principal.user_id, event_id):
            raise ConflictError("You already have an active reservation for this event")

        reservation_number = generate_reservation_number()
        reservation = await reservation_store.add(
            db,
            Reservation(
                reservation_number=reservation_number,
                qr_code=generate_qr_code(reservation_number),
                event_id=event.id,
                event_title=event.title,
                event_date=event.start_date,
                event_location=event.location or "",
                user_id=principal.user_id,
                user_email=principal.email,
                user_name=principal.display_name,
                number_of_tickets=number_of_tickets,
                total_price=event.price * number_of_tickets,
                status=ReservationStatus.PENDING,
            ),
        )

        try:
            reservation = await confirm_reservation(db, reservation.id)
        except DomainError:
            # Lost the race for the remaining spots: drop the pending row.
            await reservation_store.remove(db, reservation)
            raise
    except ConflictError:
        record_reservation_attempt("conflict")
        raise
    except DomainError:
        record_reservation_attempt("rejected")
        raise
    except Exception:
        record_reservation_attempt("error")
        raise

    record_reservation_attempt("confirmed")
    reservation_latency.observe(time.perf_counter() - started)
    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        reservation_number=reservation.reservation_number,
        event_id=event_id,
        user_id=principal.user_id,
        tickets=number_of_tickets,
    )
    return reservation


async def confirm_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    """pending -> confirmed, claiming the reservation's spots in one atomic step."""
    message = "Only pending reservations can be confirmed"
    reservation = await reservation_store.get(db, reservation_id)
    if reservation.status != ReservationStatus.PENDING:
        raise InvalidStateError(message)

    previous = await _transition(db, reservation, ReservationStatus.CONFIRMED, message, confirmed_at=utcnow())
    try:
        await event_service.increment_registered_count(
            db, reservation.event_id, seats=reservation.number_of_tickets
        )
    except DomainError:
        # No spots for it: hand the row back to its previous status.
        await reservation_store.transition(
            db, reservation.id, ReservationStatus.CONFIRMED, previous, confirmed_at=None
        )
        record_transition(ReservationStatus.CONFIRMED.value, previous.value)
        raise

    reservation = await reservation_store.get(db, reservation_id)
    logger.info(
        "reservation_confirmed",
        reservation_id=reservation.id,
        event_id=reservation.event_id,
        tickets=reservation.number_of_tickets,
    )
    return reservation


async def cancel_reservation(
    db: AsyncSession,
    reservation_id: int,
    principal: Principal,
    reason: Optional[str] = None,
) -> Reservation:
    """
    Cancel on behalf of the owner or an admin. Non-admins cannot cancel once
    the event is less than CANCELLATION_WINDOW_HOURS away.
    """
    settings = get_settings()
    reservation = await reservation_store.get(db, reservation_id)

    if not principal.can_act_for(reservation.user_id):
        raise ForbiddenError("You are not allowed to cancel this reservation")

    if reservation.status in (ReservationStatus.CANCELED, ReservationStatus.REFUNDED):
        raise InvalidStateError("This reservation is already canceled")
    if reservation.status == ReservationStatus.CHECKED_IN:
        raise InvalidStateError("A reservation cannot be canceled after check-in")
    if not can_transition_reservation(reservation.status, ReservationStatus.CANCELED):
        raise InvalidStateError(f"A {reservation.status.value} reservation cannot be canceled")

    event = await event_service.get_event(db, reservation.event_id)
    hours_before_event = (event.start_date - utcnow()).total_seconds() / 3600
    if hours_before_event < settings.CANCELLATION_WINDOW_HOURS and not principal.is_admin:
        raise InvalidStateError(
            f"Cancellation is closed less than {settings.CANCELLATION_WINDOW_HOURS}h before the event"
        )

    previous = await _transition(
        db,
        reservation,
        ReservationStatus.CANCELED,
        "This reservation was changed by another request and cannot be canceled",
        cancel_reason=reason or settings.DEFAULT_CANCEL_REASON,
        canceled_at=utcnow(),
    )
    # Only the request that won the transition releases the spots.
    if previous == ReservationStatus.CONFIRMED:
        await event_service.decrement_registered_count(
            db, reservation.event_id, seats=reservation.number_of_tickets
        )

    reservation = await reservation_store.get(db, reservation_id)
    logger.info(
        "reservation_canceled",
        reservation_id=reservation.id,
        event_id=reservation.event_id,
        by=principal.user_id,
        admin=principal.is_admin,
        released=reservation.number_of_tickets if previous == ReservationStatus.CONFIRMED else 0,
    )
    return reservation


async def check_in(db: AsyncSession, reservation_id: int) -> Reservation:
    """confirmed -> checked_in, allowed from start - CHECK_IN_OPENS_HOURS_BEFORE until the end."""
    settings = get_settings()
    message = "Only confirmed reservations can be checked in"
    reservation = await reservation_store.get(db, reservation_id)

    if reservation.status != ReservationStatus.CONFIRMED:
        raise InvalidStateError(message)

    event = await event_service.get_event(db, reservation.event_id)
    now = utcnow()
    opens_at = event.start_date - timedelta(hours=settings.CHECK_IN_OPENS_HOURS_BEFORE)

    if now < opens_at:
        raise InvalidStateError(
            f"Check-in is not open yet (too early, opens {settings.CHECK_IN_OPENS_HOURS_BEFORE}h before the event)"
        )
    if now > event.end_date:
        raise InvalidStateError("The event has ended")

    await _transition(db, reservation, ReservationStatus.CHECKED_IN, message, checked_in_at=now)
    reservation = await reservation_store.get(db, reservation_id)

    logger.info("reservation_checked_in", reservation_id=reservation.id, event_id=reservation.event_id)
    return reservation


async def mark_no_show(db: AsyncSession, reservation_id: int) -> Reservation:
    """confirmed -> no_show. The spots stay counted: a no-show forfeits them."""
    reservation = await reservation_store.get(db, reservation_id)
    await _transition(
        db,
        reservation,
        ReservationStatus.NO_SHOW,
        "Only confirmed reservations can be marked as no-show",
    )
    reservation = await reservation_store.get(db, reservation_id)
    logger.info("reservation_no_show", reservation_id=reservation.id, event_id=reservation.event_id)
    return reservation


async def refund(db: AsyncSession, reservation_id: int) -> Reservation:
    """canceled | no_show -> refunded. Bookkeeping only; no payment is issued."""
    reservation = await reservation_store.get(db, reservation_id)
    await _transition(
        db,
        reservation,
        ReservationStatus.REFUNDED,
        "Only canceled or no-show reservations can be refunded",
    )
    reservation = await reservation_store.get(db, reservation_id)
    logger.info("reservation_refunded", reservation_id=reservation.id, amount=float(reservation.total_price))
    return reservation


async def get_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    return await reservation_store.get(db, reservation_id)


async def get_for_owner(db: AsyncSession, reservation_id: int, principal: Principal) -> Reservation:
    """Someone else's reservation looks exactly like a missing one."""
    reservation = await reservation_store.get(db, reservation_id)
    if reservation.user_id != principal.user_id:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    return reservation


async def get_by_number(db: AsyncSession, reservation_number: str) -> Reservation:
    return await reservation_store.get_by_number(db, reservation_number)


async def list_for_user(
    db: AsyncSession,
    user_id: str,
    filters: ReservationFilter,
    **paging,
) -> ReservationPage:
    filters.user_id = user_id
    return await reservation_store.list_reservations(db, filters, **paging)


async def list_for_organizer(
    db: AsyncSession,
    organizer_id: str,
    filters: ReservationFilter,
    **paging,
) -> ReservationPage:
    """Admins only see reservations for events they organise."""
    filters.event_ids = await event_service.organizer_event_ids(db, organizer_id)
    return await reservation_store.list_reservations(db, filters, **paging)


async def list_for_event(
    db: AsyncSession,
    event_id: int,
    filters: ReservationFilter,
    **paging,
) -> ReservationPage:
    await event_service.get_event(db, event_id)
    filters.event_id = event_id
    return await reservation_store.list_reservations(db, filters, **paging)


async def statistics_for_organizer(db: AsyncSession, organizer_id: str) -> dict:
    event_ids = await event_service.organizer_event_ids(db, organizer_id)
    return await reservation_store.statistics(db, event_ids)
