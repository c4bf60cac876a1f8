from planora.models.enums import EventStatus, ReservationStatus
from planora.models.event import Event
from planora.models.reservation import Reservation

__all__ = ["Event", "Reservation", "EventStatus", "ReservationStatus"]
