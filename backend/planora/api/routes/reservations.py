"""
Reservation endpoints.

Participant routes live under /reservations/my and always act without admin
capabilities, even for an admin caller. GET /reservations and
/reservations/statistics cover the events the calling admin organises. Every
other admin route, including the per-event listing, is open to any admin.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from planora.db.session import get_db
from planora.schemas.reservation import (
    ReservationCreate, ReservationCancel, ReservationQuery, ReservationResponse,
    ReservationListResponse, ReservationStatistics, QrVerifyRequest, QrVerifyResponse,
)
from planora.services import reservation_service, ticket_service
from planora.services.cache_service import invalidate_event_cache
from planora.services.reservation_store import ReservationFilter, ReservationPage
from planora.core.security import Principal, get_current_principal, require_admin
from planora.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/reservations", tags=["Reservations"])


def _filter(query: ReservationQuery) -> ReservationFilter:
    return ReservationFilter(
        status=query.status,
        event_id=query.event_id,
        user_id=query.user_id,
        reservation_number=query.reservation_number,
    )


def _paging(query: ReservationQuery) -> dict:
    return {
        "page": query.page,
        "limit": query.limit,
        "sort_by": query.sort_by,
        "sort_order": query.sort_order,
    }


def _page_response(result: ReservationPage) -> ReservationListResponse:
    return ReservationListResponse(
        reservations=[ReservationResponse.model_validate(r) for r in result.reservations],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


def _pdf_response(reservation, document: bytes) -> Response:
    return Response(
        content=document,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="ticket-{reservation.reservation_number}.pdf"',
        },
    )


# Participant routes

@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation_endpoint(
    reservation_data: ReservationCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve tickets for a published, upcoming event.

    The reservation is confirmed in the same request: the response is either
    a confirmed reservation or a 409 when the event cannot hold the tickets.
    """
    reservation = await reservation_service.create_reservation(
        db,
        reservation_data.event_id,
        principal,
        number_of_tickets=reservation_data.number_of_tickets,
    )
    await invalidate_event_cache()
    return reservation


@router.get("/my", response_model=ReservationListResponse)
async def list_my_reservations(
    query: Annotated[ReservationQuery, Query()],
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await reservation_service.list_for_user(
        db, principal.user_id, _filter(query), **_paging(query)
    )
    return _page_response(result)


@router.get("/my/{reservation_id}", response_model=ReservationResponse)
async def get_my_reservation(
    reservation_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.get_for_owner(db, reservation_id, principal)


@router.patch("/my/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_my_reservation(
    reservation_id: int,
    cancel_data: ReservationCancel,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    reservation = await reservation_service.cancel_reservation(
        db, reservation_id, principal.as_participant(), reason=cancel_data.reason
    )
    await invalidate_event_cache()
    return reservation


@router.get("/my/{reservation_id}/ticket")
async def download_my_ticket(
    reservation_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    reservation, document = await ticket_service.render_ticket(
        db, reservation_id, principal.as_participant()
    )
    return _pdf_response(reservation, document)


# Admin routes

@router.get("/", response_model=ReservationListResponse)
async def list_reservations(
    query: Annotated[ReservationQuery, Query()],
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reservations for the events organised by the calling admin."""
    result = await reservation_service.list_for_organizer(
        db, principal.user_id, _filter(query), **_paging(query)
    )
    return _page_response(result)


@router.get("/statistics", response_model=ReservationStatistics)
async def reservation_statistics(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.statistics_for_organizer(db, principal.user_id)


@router.get("/event/{event_id}", response_model=ReservationListResponse)
async def list_event_reservations(
    event_id: int,
    query: Annotated[ReservationQuery, Query()],
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await reservation_service.list_for_event(db, event_id, _filter(query), **_paging(query))
    return _page_response(result)


@router.get("/number/{reservation_number}", response_model=ReservationResponse)
async def get_by_number(
    reservation_number: str,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.get_by_number(db, reservation_number)


@router.post("/verify-qr", response_model=QrVerifyResponse)
async def verify_qr(
    verify_data: QrVerifyRequest,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Door check by stored QR token. Read-only: does not check the holder in."""
    verdict = await ticket_service.verify_by_qr_token(db, verify_data.qr_code)
    return QrVerifyResponse(
        valid=verdict.valid,
        message=verdict.message,
        reservation=ReservationResponse.model_validate(verdict.reservation) if verdict.reservation else None,
    )


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.get_reservation(db, reservation_id)


@router.patch("/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation(
    reservation_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    reservation = await reservation_service.confirm_reservation(db, reservation_id)
    await invalidate_event_cache()
    return reservation


@router.patch("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int,
    cancel_data: ReservationCancel,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    reservation = await reservation_service.cancel_reservation(
        db, reservation_id, principal, reason=cancel_data.reason
    )
    await invalidate_event_cache()
    return reservation


@router.patch("/{reservation_id}/check-in", response_model=ReservationResponse)
async def check_in_reservation(
    reservation_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.check_in(db, reservation_id)


@router.patch("/{reservation_id}/no-show", response_model=ReservationResponse)
async def no_show_reservation(
    reservation_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.mark_no_show(db, reservation_id)


@router.patch("/{reservation_id}/refund", response_model=ReservationResponse)
async def refund_reservation(
    reservation_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await reservation_service.refund(db, reservation_id)


@router.get("/{reservation_id}/ticket")
async def download_ticket(
    reservation_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    reservation, document = await ticket_service.render_ticket(db, reservation_id, principal)
    return _pdf_response(reservation, document)
