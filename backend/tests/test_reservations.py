"""
Tests for reservation endpoints: participant self-service and admin operations.
"""

import pytest
from datetime import timedelta
from httpx import AsyncClient

from planora.models.enums import ReservationStatus
from tests.conftest import ALICE, BOB, OTHER_ORGANIZER, headers_for, now


@pytest.mark.asyncio
async def test_create_reservation(client: AsyncClient, alice_headers, test_event):
    event_id = test_event.id
    response = await client.post(
        "/api/v1/reservations/",
        json={"event_id": event_id, "number_of_tickets": 2},
        headers=alice_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["number_of_tickets"] == 2
    assert data["total_price"] == 50.0
    assert data["user_id"] == ALICE.user_id
    assert data["reservation_number"].startswith("RES-")
    assert data["event"]["id"] == event_id
    assert data["event"]["title"] == "Test Concert"

    event = await client.get(f"/api/v1/events/{event_id}")
    assert event.json()["registered_count"] == 2
    assert event.json()["available_spots"] == 98


@pytest.mark.asyncio
async def test_create_reservation_sold_out(client: AsyncClient, alice_headers, sold_out_event):
    event_id = sold_out_event.id
    response = await client.post(
        "/api/v1/reservations/",
        json={"event_id": event_id},
        headers=alice_headers,
    )
    assert response.status_code == 409
    assert response.json() == {"detail": "This event is full", "code": "CONFLICT"}

    event = await client.get(f"/api/v1/events/{event_id}")
    assert event.json()["registered_count"] == 50


@pytest.mark.asyncio
async def test_create_reservation_insufficient_spots(client: AsyncClient, alice_headers, make_event):
    event = await make_event(capacity=10, registered_count=8)
    event_id = event.id
    response = await client.post(
        "/api/v1/reservations/",
        json={"event_id": event_id, "number_of_tickets": 3},
        headers=alice_headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Only 2 spot(s) remaining"

    mine = await client.get("/api/v1/reservations/my", headers=alice_headers)
    assert mine.json()["total"] == 0


@pytest.mark.asyncio
async def test_create_duplicate_reservation(client: AsyncClient, alice_headers, test_event):
    event_id = test_event.id
    first = await client.post("/api/v1/reservations/", json={"event_id": event_id}, headers=alice_headers)
    assert first.status_code == 201

    second = await client.post("/api/v1/reservations/", json={"event_id": event_id}, headers=alice_headers)
    assert second.status_code == 409

    event = await client.get(f"/api/v1/events/{event_id}")
    assert event.json()["registered_count"] == 1


@pytest.mark.asyncio
async def test_create_reservation_unknown_event(client: AsyncClient, alice_headers):
    response = await client.post("/api/v1/reservations/", json={"event_id": 99999}, headers=alice_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("tickets", [0, 11])
async def test_create_reservation_ticket_bounds(client: AsyncClient, alice_headers, test_event, tickets):
    response = await client.post(
        "/api/v1/reservations/",
        json={"event_id": test_event.id, "number_of_tickets": tickets},
        headers=alice_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_reservation_unauthenticated(client: AsyncClient, test_event):
    response = await client.post("/api/v1/reservations/", json={"event_id": test_event.id})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_my_reservations(client: AsyncClient, alice_headers, make_event, make_reservation):
    first = await make_event(title="First")
    second = await make_event(title="Second")
    await make_reservation(first, ALICE)
    await make_reservation(second, ALICE, status=ReservationStatus.CANCELED)
    await make_reservation(first, BOB)

    response = await client.get("/api/v1/reservations/my", headers=alice_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert {r["user_id"] for r in data["reservations"]} == {ALICE.user_id}

    confirmed = await client.get("/api/v1/reservations/my?status=confirmed", headers=alice_headers)
    assert confirmed.json()["total"] == 1
    assert confirmed.json()["reservations"][0]["event_title"] == "First"


@pytest.mark.asyncio
async def test_my_reservations_pagination(client: AsyncClient, alice_headers, make_event, make_reservation):
    for i in range(3):
        event = await make_event(title=f"Event {i}")
        await make_reservation(event, ALICE)

    response = await client.get("/api/v1/reservations/my?page=2&limit=2", headers=alice_headers)
    data = response.json()
    assert data["total"] == 3
    assert data["total_pages"] == 2
    assert len(data["reservations"]) == 1


@pytest.mark.asyncio
async def test_my_reservation_detail_hides_others(
    client: AsyncClient, alice_headers, bob_headers, test_event, make_reservation
):
    reservation = await make_reservation(test_event, ALICE)
    reservation_id = reservation.id

    own = await client.get(f"/api/v1/reservations/my/{reservation_id}", headers=alice_headers)
    assert own.status_code == 200

    other = await client.get(f"/api/v1/reservations/my/{reservation_id}", headers=bob_headers)
    assert other.status_code == 404


@pytest.mark.asyncio
async def test_participant_cancel_releases_spots(client: AsyncClient, alice_headers, test_event):
    event_id = test_event.id
    created = await client.post(
        "/api/v1/reservations/",
        json={"event_id": event_id, "number_of_tickets": 4},
        headers=alice_headers,
    )
    reservation_id = created.json()["id"]

    response = await client.patch(
        f"/api/v1/reservations/my/{reservation_id}/cancel",
        json={"reason": "Change of plans"},
        headers=alice_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "canceled"
    assert response.json()["cancel_reason"] == "Change of plans"

    event = await client.get(f"/api/v1/events/{event_id}")
    assert event.json()["registered_count"] == 0

    again = await client.patch(
        f"/api/v1/reservations/my/{reservation_id}/cancel", json={}, headers=alice_headers
    )
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_cancel_inside_window(
    client: AsyncClient, alice_headers, organizer_headers, make_event, make_reservation
):
    event = await make_event(start_date=now() + timedelta(hours=10), registered_count=1)
    reservation = await make_reservation(event, ALICE)
    reservation_id = reservation.id

    participant = await client.patch(
        f"/api/v1/reservations/my/{reservation_id}/cancel", json={}, headers=alice_headers
    )
    assert participant.status_code == 400
    assert participant.json()["code"] == "INVALID_STATE"

    admin = await client.patch(
        f"/api/v1/reservations/{reservation_id}/cancel",
        json={"reason": "Venue issue"},
        headers=organizer_headers,
    )
    assert admin.status_code == 200
    assert admin.json()["status"] == "canceled"


@pytest.mark.asyncio
async def test_cancel_someone_elses_reservation(client: AsyncClient, bob_headers, test_event, make_reservation):
    reservation = await make_reservation(test_event, ALICE)
    response = await client.patch(
        f"/api/v1/reservations/my/{reservation.id}/cancel", json={}, headers=bob_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("path", [
    "/api/v1/reservations/",
    "/api/v1/reservations/statistics",
    "/api/v1/reservations/1",
])
async def test_admin_routes_reject_participants(client: AsyncClient, alice_headers, path):
    response = await client.get(path, headers=alice_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_download_my_ticket(client: AsyncClient, alice_headers, test_event, make_reservation):
    reservation = await make_reservation(test_event, ALICE)
    number = reservation.reservation_number

    response = await client.get(f"/api/v1/reservations/my/{reservation.id}/ticket", headers=alice_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert f"ticket-{number}.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_ticket_of_canceled_reservation(client: AsyncClient, alice_headers, test_event, make_reservation):
    reservation = await make_reservation(test_event, ALICE, status=ReservationStatus.CANCELED)
    response = await client.get(f"/api/v1/reservations/my/{reservation.id}/ticket", headers=alice_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_ticket_of_other_user(client: AsyncClient, bob_headers, test_event, make_reservation):
    reservation = await make_reservation(test_event, ALICE)
    response = await client.get(f"/api/v1/reservations/my/{reservation.id}/ticket", headers=bob_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_door_flow(client: AsyncClient, organizer_headers, make_event, make_reservation):
    """Verify at the door, check in, then the same code is reported as used."""
    event = await make_event(start_date=now() + timedelta(hours=1), registered_count=1)
    reservation = await make_reservation(event, ALICE)
    reservation_id, qr_code = reservation.id, reservation.qr_code

    verify = await client.post(
        "/api/v1/reservations/verify-qr", json={"qr_code": qr_code}, headers=organizer_headers
    )
    assert verify.status_code == 200
    assert verify.json()["valid"] is True
    assert verify.json()["reservation"]["id"] == reservation_id

    checked_in = await client.patch(f"/api/v1/reservations/{reservation_id}/check-in", headers=organizer_headers)
    assert checked_in.status_code == 200
    assert checked_in.json()["status"] == "checked_in"
    assert checked_in.json()["checked_in_at"] is not None

    again = await client.patch(f"/api/v1/reservations/{reservation_id}/check-in", headers=organizer_headers)
    assert again.status_code == 400

    verify = await client.post(
        "/api/v1/reservations/verify-qr", json={"qr_code": qr_code}, headers=organizer_headers
    )
    assert verify.json()["valid"] is False
    assert verify.json()["message"] == "This reservation has already been used"


@pytest.mark.asyncio
async def test_verify_unknown_code(client: AsyncClient, organizer_headers):
    response = await client.post(
        "/api/v1/reservations/verify-qr", json={"qr_code": "QR-UNKNOWN"}, headers=organizer_headers
    )
    assert response.status_code == 200
    assert response.json() == {"valid": False, "message": "Invalid reservation code", "reservation": None}


@pytest.mark.asyncio
async def test_check_in_too_early(client: AsyncClient, organizer_headers, test_event, make_reservation):
    reservation = await make_reservation(test_event, ALICE)
    response = await client.patch(f"/api/v1/reservations/{reservation.id}/check-in", headers=organizer_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_no_show_then_refund(client: AsyncClient, organizer_headers, make_event, make_reservation):
    event = await make_event(registered_count=2)
    event_id = event.id
    reservation = await make_reservation(event, ALICE, number_of_tickets=2)
    reservation_id = reservation.id

    no_show = await client.patch(f"/api/v1/reservations/{reservation_id}/no-show", headers=organizer_headers)
    assert no_show.status_code == 200
    assert no_show.json()["status"] == "no_show"

    refunded = await client.patch(f"/api/v1/reservations/{reservation_id}/refund", headers=organizer_headers)
    assert refunded.status_code == 200
    assert refunded.json()["status"] == "refunded"

    event = await client.get(f"/api/v1/events/{event_id}")
    assert event.json()["registered_count"] == 2


@pytest.mark.asyncio
async def test_refund_confirmed_rejected(client: AsyncClient, organizer_headers, test_event, make_reservation):
    reservation = await make_reservation(test_event, ALICE)
    response = await client.patch(f"/api/v1/reservations/{reservation.id}/refund", headers=organizer_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_confirm_pending(client: AsyncClient, organizer_headers, test_event, make_reservation):
    event_id = test_event.id
    pending = await make_reservation(
        test_event, ALICE, status=ReservationStatus.PENDING, confirmed_at=None, number_of_tickets=3
    )
    response = await client.patch(f"/api/v1/reservations/{pending.id}/confirm", headers=organizer_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    event = await client.get(f"/api/v1/events/{event_id}")
    assert event.json()["registered_count"] == 3


@pytest.mark.asyncio
async def test_admin_listing_is_scoped_to_own_events(
    client: AsyncClient, organizer_headers, make_event, make_reservation
):
    mine = await make_event()
    theirs = await make_event(organizer_id=OTHER_ORGANIZER.user_id)
    await make_reservation(mine, ALICE)
    await make_reservation(mine, BOB)
    await make_reservation(theirs, ALICE)

    response = await client.get("/api/v1/reservations/", headers=organizer_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 2

    other = await client.get("/api/v1/reservations/", headers=headers_for(OTHER_ORGANIZER))
    assert other.json()["total"] == 1

    stats = await client.get("/api/v1/reservations/statistics", headers=organizer_headers)
    assert stats.status_code == 200
    assert stats.json()["total"] == 2
    assert stats.json()["by_status"]["confirmed"] == 2
    assert stats.json()["total_revenue"] == 50.0


@pytest.mark.asyncio
async def test_event_reservations_and_lookup_by_number(
    client: AsyncClient, organizer_headers, test_event, make_reservation
):
    event_id = test_event.id
    reservation = await make_reservation(test_event, ALICE)
    number = reservation.reservation_number
    await make_reservation(test_event, BOB, status=ReservationStatus.CANCELED)

    listing = await client.get(
        f"/api/v1/reservations/event/{event_id}?status=canceled", headers=organizer_headers
    )
    assert listing.json()["total"] == 1
    assert listing.json()["reservations"][0]["user_id"] == BOB.user_id

    by_number = await client.get(f"/api/v1/reservations/number/{number}", headers=organizer_headers)
    assert by_number.status_code == 200
    assert by_number.json()["user_id"] == ALICE.user_id

    missing = await client.get("/api/v1/reservations/number/RES-NOPE", headers=organizer_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_event_listing_open_to_any_admin(client: AsyncClient, test_event, make_reservation):
    event_id = test_event.id
    await make_reservation(test_event, ALICE)
    other_admin = headers_for(OTHER_ORGANIZER)

    listing = await client.get(f"/api/v1/reservations/event/{event_id}", headers=other_admin)
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    overview = await client.get("/api/v1/reservations/", headers=other_admin)
    assert overview.json()["total"] == 0
