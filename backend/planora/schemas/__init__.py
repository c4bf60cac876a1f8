from planora.schemas.event import (
    EventCreate, EventUpdate, EventResponse, EventListResponse, EventStatistics,
)
from planora.schemas.reservation import (
    ReservationCreate, ReservationCancel, ReservationQuery, ReservationResponse,
    ReservationListResponse, QrVerifyRequest, QrVerifyResponse, ReservationStatistics,
)

__all__ = [
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse", "EventStatistics",
    "ReservationCreate", "ReservationCancel", "ReservationQuery", "ReservationResponse",
    "ReservationListResponse", "QrVerifyRequest", "QrVerifyResponse", "ReservationStatistics",
]
