"""
Pydantic schemas for reservation-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, computed_field

from planora.models.enums import ReservationStatus


class ReservationCreate(BaseModel):
    event_id: int
    number_of_tickets: int = Field(default=1, ge=1, le=10)


class ReservationCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class QrVerifyRequest(BaseModel):
    qr_code: str = Field(..., min_length=1, max_length=96)


class ReservationQuery(BaseModel):
    status: Optional[ReservationStatus] = None
    event_id: Optional[int] = None
    user_id: Optional[str] = None
    reservation_number: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort_by: Literal["created_at", "event_date", "total_price", "status"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class EventSnapshot(BaseModel):
    id: int
    title: str
    start_date: datetime
    location: str


class ReservationResponse(BaseModel):
    id: int
    reservation_number: str
    qr_code: str
    event_id: int
    event_title: str
    event_date: datetime
    event_location: str
    user_id: str
    user_email: str
    user_name: str
    number_of_tickets: int
    total_price: float
    status: ReservationStatus
    cancel_reason: Optional[str]
    confirmed_at: Optional[datetime]
    canceled_at: Optional[datetime]
    checked_in_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def event(self) -> EventSnapshot:
        return EventSnapshot(
            id=self.event_id,
            title=self.event_title,
            start_date=self.event_date,
            location=self.event_location,
        )


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class QrVerifyResponse(BaseModel):
    valid: bool
    message: str
    reservation: Optional[ReservationResponse] = None


class ReservationStatistics(BaseModel):
    total: int
    by_status: dict[ReservationStatus, int]
    total_revenue: float
    today_reservations: int
