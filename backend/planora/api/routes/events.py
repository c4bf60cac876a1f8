"""
Event endpoints. The public catalogue is cached in Redis; organizer routes
require the admin role. /mine and /statistics cover the caller's own events;
managing a single event is open to its owner or any admin.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from planora.db.session import get_db
from planora.models.enums import EventStatus
from planora.schemas.event import (
    EventCreate, EventUpdate, EventResponse, EventListResponse, EventStatistics,
)
from planora.services import event_service
from planora.services.cache_service import get_cached_events, set_cached_events, invalidate_event_cache
from planora.core.security import Principal, require_admin
from planora.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create an event (draft unless another initial status is requested)."""
    event = await event_service.create_event(db, event_data, principal)
    await invalidate_event_cache()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """
    Public catalogue of published events.
    Cached in Redis; invalidated whenever an event or a registration count changes.
    """
    cached = await get_cached_events(page, page_size, upcoming_only, search)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await event_service.list_events(db, page, page_size, upcoming_only, search)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": event_service.total_pages(total, page_size),
        "cached": False,
    }
    await set_cached_events(page, page_size, upcoming_only, search, response_data)
    return EventListResponse(**response_data)


@router.get("/mine", response_model=EventListResponse)
async def list_my_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    event_status: Optional[EventStatus] = Query(None, alias="status"),
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Events organised by the caller, any status."""
    events, total = await event_service.find_by_organizer(
        db, principal.user_id, page, page_size, event_status
    )
    return EventListResponse(
        events=[EventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=event_service.total_pages(total, page_size),
    )


@router.get("/statistics", response_model=EventStatistics)
async def event_statistics_endpoint(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await event_service.get_organizer_statistics(db, principal.user_id)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a published event. Not cached (needs real-time registration counts)."""
    return await event_service.get_published_event(db, event_id)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    event_data: EventUpdate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.update_event(db, event_id, event_data, principal)
    await invalidate_event_cache()
    return event


@router.post("/{event_id}/publish", response_model=EventResponse)
async def publish_event_endpoint(
    event_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.publish_event(db, event_id, principal)
    await invalidate_event_cache()
    return event


@router.post("/{event_id}/cancel", response_model=EventResponse)
async def cancel_event_endpoint(
    event_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.cancel_event(db, event_id, principal)
    await invalidate_event_cache()
    return event


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_endpoint(
    event_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await event_service.delete_event(db, event_id, principal)
    await invalidate_event_cache()
