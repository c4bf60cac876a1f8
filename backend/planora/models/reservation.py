"""
Reservation model: one row per ticket purchase.

Key design decisions:
- Event title/date/location are copied at creation (historical snapshot);
  they are not refreshed when the event is edited later
- total_price is computed once at creation and never recomputed
- Partial unique index allows at most one pending/confirmed reservation per
  (user, event); canceled and terminal rows do not block a new reservation
- reservation_number and qr_code are unique lookup keys
"""

from sqlalchemy import Column, Integer, String, Numeric, Enum, ForeignKey, Index, CheckConstraint, text

from planora.db.base import Base, TimestampMixin, UTCDateTime
from planora.models.enums import ReservationStatus

_ACTIVE_PREDICATE = text("status IN ('pending', 'confirmed')")


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    reservation_number = Column(String(64), nullable=False, unique=True, index=True)
    qr_code = Column(String(96), nullable=False, unique=True, index=True)

    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    event_title = Column(String(255), nullable=False)
    event_date = Column(UTCDateTime(), nullable=False)
    event_location = Column(String(255), nullable=False, default="")

    user_id = Column(String(64), nullable=False, index=True)
    user_email = Column(String(255), nullable=False)
    user_name = Column(String(255), nullable=False)

    number_of_tickets = Column(Integer, nullable=False, default=1)
    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(
        Enum(ReservationStatus, name="reservation_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ReservationStatus.PENDING,
    )
    cancel_reason = Column(String(500), nullable=True)
    confirmed_at = Column(UTCDateTime(), nullable=True)
    canceled_at = Column(UTCDateTime(), nullable=True)
    checked_in_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint("number_of_tickets > 0", name="check_reservation_tickets_positive"),
        CheckConstraint("total_price >= 0", name="check_reservation_price_non_negative"),
        Index(
            "uq_reservations_active_user_event",
            "user_id",
            "event_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_reservations_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, number={self.reservation_number}, status={self.status})>"
