"""
Closed status enumerations and their allowed transitions.

Every status change in the services is checked against these tables instead
of ad hoc conditionals.
"""

import enum


class EventStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELED = "canceled"


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    CHECKED_IN = "checked_in"
    NO_SHOW = "no_show"
    REFUNDED = "refunded"


EVENT_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.PUBLISHED, EventStatus.CANCELED}),
    EventStatus.PUBLISHED: frozenset({EventStatus.CANCELED}),
    EventStatus.CANCELED: frozenset(),
}

RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELED}),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.CANCELED,
        ReservationStatus.CHECKED_IN,
        ReservationStatus.NO_SHOW,
    }),
    ReservationStatus.CANCELED: frozenset({ReservationStatus.REFUNDED}),
    ReservationStatus.NO_SHOW: frozenset({ReservationStatus.REFUNDED}),
    ReservationStatus.CHECKED_IN: frozenset(),
    ReservationStatus.REFUNDED: frozenset(),
}

# Statuses that hold a claim on the user's single slot for an event.
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)

# Statuses for which a ticket document may be issued.
TICKETABLE_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)


def can_transition_event(current: EventStatus, target: EventStatus) -> bool:
    return target in EVENT_TRANSITIONS[current]


def can_transition_reservation(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in RESERVATION_TRANSITIONS[current]
