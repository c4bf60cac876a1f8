"""
Event registry: event CRUD, status lifecycle and the registered-count counter.

CONCURRENCY STRATEGY: Conditional UPDATE as the capacity guard
===============================================================

Problem:
  Two users try to reserve the last spot simultaneously.
  Both read registered_count = capacity - 1, both add one, both succeed.
  Result: Overbooking.

Solution:
  The counter is never read-modified-written by Python code. A single
  statement both checks and applies the change:

    UPDATE events
       SET registered_count = registered_count + :n, version = version + 1
     WHERE id = :event_id
       AND status = 'published'
       AND registered_count + :n <= capacity

  If no row matched, the event is re-read only to explain *why* (missing,
  not published, or full). The row lock taken by the UPDATE serialises
  concurrent writers, and the CHECK constraints on the table are the final
  safety net.

  The whole ticket count of a reservation is applied as one delta, so a
  reservation either holds all of its spots or none of them.
"""

import math
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from planora.core.errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from planora.core.logging import get_logger
from planora.core.metrics import record_capacity_rejection
from planora.core.security import Principal
from planora.db.base import utcnow
from planora.models.enums import EventStatus, can_transition_event
from planora.models.event import Event
from planora.models.reservation import Reservation
from planora.schemas.event import EventCreate, EventUpdate

logger = get_logger(__name__)


def capacity_conflict_message(available: int) -> str:
    if available <= 0:
        return "This event is full"
    return f"Only {available} spot(s) remaining"


async def _reload(db: AsyncSession, event_id: int) -> Optional[Event]:
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID, always reading current counter values."""
    event = await _reload(db, event_id)
    if not event:
        raise NotFoundError(f"Event {event_id} not found")
    return event


async def get_published_event(db: AsyncSession, event_id: int) -> Event:
    """Public lookup: drafts and canceled events are hidden."""
    event = await get_event(db, event_id)
    if event.status != EventStatus.PUBLISHED:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def _ensure_can_manage(event: Event, principal: Principal) -> None:
    if not principal.can_act_for(event.organizer_id):
        raise ForbiddenError("You are not allowed to manage this event")


def _validate_dates(start_date: datetime, end_date: datetime) -> None:
    if end_date <= start_date:
        raise InvalidStateError("End date must be after start date")


def _validate_transition(event: Event, target: EventStatus) -> None:
    if not can_transition_event(event.status, target):
        raise InvalidStateError(
            f"Status transition not allowed: {event.status.value} -> {target.value}"
        )
    if target == EventStatus.PUBLISHED and event.start_date <= utcnow():
        raise InvalidStateError("Cannot publish an event whose start date has passed")


async def create_event(db: AsyncSession, event_data: EventCreate, principal: Principal) -> Event:
    """Create a new event with no registrations."""
    _validate_dates(event_data.start_date, event_data.end_date)
    if event_data.status == EventStatus.CANCELED:
        raise InvalidStateError("An event cannot be created canceled")
    if event_data.status == EventStatus.PUBLISHED and event_data.start_date <= utcnow():
        raise InvalidStateError("Cannot publish an event whose start date has passed")

    event = Event(
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        category=event_data.category,
        start_date=event_data.start_date,
        end_date=event_data.end_date,
        capacity=event_data.capacity,
        registered_count=0,
        price=event_data.price,
        status=event_data.status,
        organizer_id=principal.user_id,
        organizer_name=principal.display_name,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info(
        "event_created",
        event_id=event.id,
        title=event.title,
        capacity=event.capacity,
        status=event.status.value,
    )
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
    search: Optional[str] = None,
) -> tuple[list[Event], int]:
    """
    Public catalogue: published events, soonest first.
    Uses the ix_events_status_start index for the status + date filter.
    """
    query = select(Event).where(Event.status == EventStatus.PUBLISHED)

    if upcoming_only:
        query = query.where(Event.start_date >= utcnow())

    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Event.title.ilike(pattern),
                Event.description.ilike(pattern),
                Event.location.ilike(pattern),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.start_date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    return list(result.scalars().all()), total


async def find_by_organizer(
    db: AsyncSession,
    organizer_id: str,
    page: int = 1,
    page_size: int = 20,
    status: Optional[EventStatus] = None,
) -> tuple[list[Event], int]:
    query = select(Event).where(Event.organizer_id == organizer_id)
    if status:
        query = query.where(Event.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query
        .order_by(Event.created_at.desc(), Event.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def organizer_event_ids(db: AsyncSession, organizer_id: str) -> list[int]:
    result = await db.execute(select(Event.id).where(Event.organizer_id == organizer_id))
    return list(result.scalars().all())


async def update_event(
    db: AsyncSession,
    event_id: int,
    event_data: EventUpdate,
    principal: Principal,
) -> Event:
    """
    Edit an event. Price edits only affect future reservations: existing
    reservations keep the total_price computed when they were created.
    """
    event = await get_event(db, event_id)
    _ensure_can_manage(event, principal)

    changes = event_data.model_dump(exclude_unset=True)

    if "status" in changes and changes["status"] != event.status:
        _validate_transition(event, changes["status"])

    start_date = changes.get("start_date", event.start_date)
    end_date = changes.get("end_date", event.end_date)
    if "start_date" in changes or "end_date" in changes:
        _validate_dates(start_date, end_date)

    if "capacity" in changes and changes["capacity"] < event.registered_count:
        raise InvalidStateError(
            f"Capacity cannot be lower than the number of registrations ({event.registered_count})"
        )

    for field, value in changes.items():
        setattr(event, field, value)

    await db.flush()
    await db.refresh(event)
    logger.info("event_updated", event_id=event.id, fields=sorted(changes))
    return event


async def publish_event(db: AsyncSession, event_id: int, principal: Principal) -> Event:
    event = await get_event(db, event_id)
    _ensure_can_manage(event, principal)
    if event.status != EventStatus.DRAFT:
        raise InvalidStateError("Only draft events can be published")
    _validate_transition(event, EventStatus.PUBLISHED)

    event.status = EventStatus.PUBLISHED
    await db.flush()
    await db.refresh(event)
    logger.info("event_published", event_id=event.id)
    return event


async def cancel_event(db: AsyncSession, event_id: int, principal: Principal) -> Event:
    event = await get_event(db, event_id)
    _ensure_can_manage(event, principal)
    if event.status == EventStatus.CANCELED:
        raise InvalidStateError("This event is already canceled")
    _validate_transition(event, EventStatus.CANCELED)

    event.status = EventStatus.CANCELED
    await db.flush()
    await db.refresh(event)
    logger.info("event_canceled", event_id=event.id, registered=event.registered_count)
    return event


async def delete_event(db: AsyncSession, event_id: int, principal: Principal) -> None:
    event = await get_event(db, event_id)
    _ensure_can_manage(event, principal)

    if event.status == EventStatus.PUBLISHED and event.registered_count > 0:
        raise InvalidStateError(
            "Cannot delete a published event with registrations. Cancel it first."
        )
    has_reservations = (
        await db.execute(
            select(func.count()).select_from(Reservation).where(Reservation.event_id == event_id)
        )
    ).scalar()
    if has_reservations:
        raise InvalidStateError("Cannot delete an event that has reservation history")

    await db.delete(event)
    await db.flush()
    logger.info("event_deleted", event_id=event_id)


async def increment_registered_count(db: AsyncSession, event_id: int, seats: int = 1) -> Event:
    """
    Atomically claim `seats` spots on a published event.

    Fails with InvalidStateError when the event is not published and with
    ConflictError when fewer than `seats` spots remain; nothing is changed in
    either case.
    """
    if seats < 1:
        raise ValueError("seats must be positive")

    result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.status == EventStatus.PUBLISHED,
            Event.registered_count + seats <= Event.capacity,
        )
        .values(
            registered_count=Event.registered_count + seats,
            version=Event.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        event = await get_event(db, event_id)
        if event.status != EventStatus.PUBLISHED:
            record_capacity_rejection("not_published")
            raise InvalidStateError("Registrations are only possible for published events")
        record_capacity_rejection("full")
        logger.warning(
            "capacity_exhausted",
            event_id=event_id,
            requested=seats,
            available=event.available_spots,
        )
        raise ConflictError(capacity_conflict_message(event.available_spots))

    event = await get_event(db, event_id)
    logger.debug("registered_count_incremented", event_id=event_id, seats=seats, registered=event.registered_count)
    return event


async def decrement_registered_count(db: AsyncSession, event_id: int, seats: int = 1) -> Event:
    """
    Release `seats` spots. A counter already at zero is left untouched and
    the event is returned unchanged; the counter never goes below zero.
    """
    if seats < 1:
        raise ValueError("seats must be positive")

    result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.registered_count > 0)
        .values(
            registered_count=case(
                (Event.registered_count >= seats, Event.registered_count - seats),
                else_=0,
            ),
            version=Event.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    event = await get_event(db, event_id)
    if result.rowcount == 0:
        logger.info("registered_count_already_zero", event_id=event_id)
    else:
        logger.debug("registered_count_decremented", event_id=event_id, seats=seats, registered=event.registered_count)
    return event


async def get_organizer_statistics(db: AsyncSession, organizer_id: str) -> dict:
    """Counts by status plus capacity/registrations of upcoming published events."""
    rows = await db.execute(
        select(Event.status, func.count())
        .where(Event.organizer_id == organizer_id)
        .group_by(Event.status)
    )
    by_status = {status: 0 for status in EventStatus}
    for status, count in rows.all():
        by_status[status] = count

    upcoming = (
        await db.execute(
            select(
                func.count(),
                func.coalesce(func.sum(Event.capacity), 0),
                func.coalesce(func.sum(Event.registered_count), 0),
            ).where(
                Event.organizer_id == organizer_id,
                Event.status == EventStatus.PUBLISHED,
                Event.start_date >= utcnow(),
            )
        )
    ).one()

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "upcoming": upcoming[0],
        "total_capacity": int(upcoming[1]),
        "total_registered": int(upcoming[2]),
    }


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size else 0
