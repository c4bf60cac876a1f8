"""
Reservation persistence: lookups by id / number / QR token and filtered,
paginated listings. No business rules live here.
"""

from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Optional, Sequence

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planora.core.errors import ConflictError, NotFoundError
from planora.core.logging import get_logger
from planora.db.base import utcnow
from planora.models.enums import ACTIVE_RESERVATION_STATUSES, TICKETABLE_STATUSES, ReservationStatus
from planora.models.reservation import Reservation

logger = get_logger(__name__)

SORTABLE_COLUMNS = {
    "created_at": Reservation.created_at,
    "event_date": Reservation.event_date,
    "total_price": Reservation.total_price,
    "status": Reservation.status,
}


@dataclass
class ReservationFilter:
    status: Optional[ReservationStatus] = None
    event_id: Optional[int] = None
    user_id: Optional[str] = None
    event_ids: Optional[Sequence[int]] = None
    reservation_number: Optional[str] = None


@dataclass
class ReservationPage:
    reservations: list[Reservation] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


async def get(db: AsyncSession, reservation_id: int) -> Reservation:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    reservation = result.scalar_one_or_none()
    if not reservation:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    return reservation


async def get_by_number(db: AsyncSession, reservation_number: str) -> Reservation:
    result = await db.execute(
        select(Reservation).where(Reservation.reservation_number == reservation_number)
    )
    reservation = result.scalar_one_or_none()
    if not reservation:
        raise NotFoundError(f"Reservation {reservation_number} not found")
    return reservation


async def find_by_qr_code(db: AsyncSession, qr_code: str) -> Optional[Reservation]:
    result = await db.execute(select(Reservation).where(Reservation.qr_code == qr_code))
    return result.scalar_one_or_none()


async def find_active(db: AsyncSession, user_id: str, event_id: int) -> Optional[Reservation]:
    """The user's pending or confirmed reservation for the event, if any."""
    result = await db.execute(
        select(Reservation).where(
            Reservation.user_id == user_id,
            Reservation.event_id == event_id,
            Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        )
    )
    return result.scalars().first()


async def add(db: AsyncSession, reservation: Reservation) -> Reservation:
    """
    Insert a new reservation. A concurrent duplicate active reservation for the
    same (user, event) trips the partial unique index and becomes a conflict.
    """
    db.add(reservation)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(
            "reservation_insert_conflict",
            user_id=reservation.user_id,
            event_id=reservation.event_id,
            error=str(e.orig),
        )
        raise ConflictError("You already have an active reservation for this event") from e
    await db.refresh(reservation)
    return reservation


async def transition(
    db: AsyncSession,
    reservation_id: int,
    from_status: ReservationStatus,
    to_status: ReservationStatus,
    **values,
) -> bool:
    """
    Move a reservation from `from_status` to `to_status` in one conditional
    UPDATE. Returns False when the row is no longer in `from_status`, i.e. a
    concurrent request changed it first; nothing is written in that case.
    """
    result = await db.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id, Reservation.status == from_status)
        .values(status=to_status, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def remove(db: AsyncSession, reservation: Reservation) -> None:
    await db.delete(reservation)
    await db.flush()


def _apply_filter(query, filters: ReservationFilter):
    if filters.status:
        query = query.where(Reservation.status == filters.status)
    if filters.event_id is not None:
        query = query.where(Reservation.event_id == filters.event_id)
    if filters.user_id:
        query = query.where(Reservation.user_id == filters.user_id)
    if filters.event_ids is not None:
        query = query.where(Reservation.event_id.in_(list(filters.event_ids)))
    if filters.reservation_number:
        query = query.where(Reservation.reservation_number.ilike(f"%{filters.reservation_number}%"))
    return query


async def list_reservations(
    db: AsyncSession,
    filters: ReservationFilter,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> ReservationPage:
    if filters.event_ids is not None and not filters.event_ids:
        return ReservationPage(page=page, limit=limit)

    query = _apply_filter(select(Reservation), filters)
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()

    column = SORTABLE_COLUMNS.get(sort_by, Reservation.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    id_ordering = Reservation.id.asc() if sort_order == "asc" else Reservation.id.desc()

    result = await db.execute(
        query.order_by(ordering, id_ordering).offset((page - 1) * limit).limit(limit)
    )
    return ReservationPage(
        reservations=list(result.scalars().all()),
        total=total,
        page=page,
        limit=limit,
    )


async def statistics(db: AsyncSession, event_ids: Optional[Sequence[int]] = None) -> dict:
    """
    Totals per status, revenue of confirmed/checked-in reservations and the
    number created since midnight UTC. `event_ids` scopes to those events.
    """
    by_status = {status: 0 for status in ReservationStatus}
    empty = {"total": 0, "by_status": by_status, "total_revenue": 0.0, "today_reservations": 0}
    if event_ids is not None and not event_ids:
        return empty

    def scoped(query):
        if event_ids is not None:
            return query.where(Reservation.event_id.in_(list(event_ids)))
        return query

    rows = await db.execute(
        scoped(select(Reservation.status, func.count()).group_by(Reservation.status))
    )
    for status, count in rows.all():
        by_status[status] = count

    revenue = (
        await db.execute(
            scoped(
                select(func.coalesce(func.sum(Reservation.total_price), 0)).where(
                    Reservation.status.in_(TICKETABLE_STATUSES)
                )
            )
        )
    ).scalar()

    midnight = datetime.combine(utcnow().date(), time.min, tzinfo=timezone.utc)
    today = (
        await db.execute(
            scoped(select(func.count()).select_from(Reservation).where(Reservation.created_at >= midnight))
        )
    ).scalar()

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "total_revenue": float(revenue or 0),
        "today_reservations": today,
    }
