"""
Event model with capacity tracking.

Key design decisions:
- `registered_count` is the authoritative count of held tickets; it is only
  changed by the conditional UPDATEs in services/event_service.py
- CHECK constraints keep 0 <= registered_count <= capacity at the DB level
- `version` is bumped on every counter change (optimistic concurrency marker)
- Composite index on (status, start_date) serves the public catalogue query
"""

from sqlalchemy import Column, Integer, String, Numeric, Enum, Index, CheckConstraint

from planora.db.base import Base, TimestampMixin, UTCDateTime
from planora.models.enums import EventStatus


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    location = Column(String(255), nullable=False, default="")
    category = Column(String(100), nullable=True)
    start_date = Column(UTCDateTime(), nullable=False)
    end_date = Column(UTCDateTime(), nullable=False)
    capacity = Column(Integer, nullable=False)
    registered_count = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(
        Enum(EventStatus, name="event_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=EventStatus.DRAFT,
    )
    organizer_id = Column(String(64), nullable=False, index=True)
    organizer_name = Column(String(255), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("registered_count >= 0", name="check_registered_non_negative"),
        CheckConstraint("capacity > 0", name="check_capacity_positive"),
        CheckConstraint("registered_count <= capacity", name="check_registered_lte_capacity"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        CheckConstraint("end_date > start_date", name="check_end_after_start"),
        Index("ix_events_status_start", "status", "start_date"),
    )

    @property
    def available_spots(self) -> int:
        return self.capacity - self.registered_count

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, registered={self.registered_count}/{self.capacity})>"
