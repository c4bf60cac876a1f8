"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from planora.models.enums import EventStatus


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    location: str = Field("", max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    start_date: datetime
    end_date: datetime
    capacity: int = Field(..., gt=0, le=100000)
    price: float = Field(0, ge=0)
    status: EventStatus = EventStatus.DRAFT

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    capacity: Optional[int] = Field(None, gt=0, le=100000)
    price: Optional[float] = Field(None, ge=0)
    status: Optional[EventStatus] = None


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    location: str
    category: Optional[str]
    start_date: datetime
    end_date: datetime
    capacity: int
    registered_count: int
    available_spots: int
    price: float
    status: EventStatus
    organizer_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
    cached: bool = False


class EventStatistics(BaseModel):
    total: int
    by_status: dict[EventStatus, int]
    upcoming: int
    total_capacity: int
    total_registered: int
