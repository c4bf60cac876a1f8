"""
Door verification and ticket rendering.

Two different QR notions:
  - `reservation.qr_code` is the stored opaque token scanned at the door and
    looked up by verify_by_qr_token.
  - derive_qr_payload() is the compact JSON drawn into the ticket image; it
    is rebuilt from the reservation fields every time and never stored.
"""

import io
import json
from dataclasses import dataclass
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_H
from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from sqlalchemy.ext.asyncio import AsyncSession

from planora.core.errors import ForbiddenError, InvalidStateError
from planora.core.logging import get_logger
from planora.core.metrics import record_qr_verification
from planora.core.security import Principal
from planora.models.enums import TICKETABLE_STATUSES, ReservationStatus
from planora.models.reservation import Reservation
from planora.services import reservation_store

logger = get_logger(__name__)

TICKET_PAGE_SIZE = (400, 650)
TICKET_MARGIN = 30


@dataclass
class QrVerification:
    valid: bool
    message: str
    reservation: Optional[Reservation] = None


def derive_qr_payload(reservation: Reservation) -> str:
    payload = {
        "id": reservation.reservation_number,
        "e": reservation.event_id,
        "u": reservation.user_id,
        "t": reservation.number_of_tickets,
        "s": reservation.status.value,
    }
    return json.dumps(payload, separators=(",", ":"))


async def verify_by_qr_token(db: AsyncSession, qr_code: str) -> QrVerification:
    """Read-only door check; it does not check the reservation in."""
    reservation = await reservation_store.find_by_qr_code(db, qr_code)

    if reservation is None:
        verdict = QrVerification(valid=False, message="Invalid reservation code")
    elif reservation.status == ReservationStatus.CANCELED:
        verdict = QrVerification(False, "This reservation was canceled", reservation)
    elif reservation.status == ReservationStatus.CHECKED_IN:
        verdict = QrVerification(False, "This reservation has already been used", reservation)
    elif reservation.status != ReservationStatus.CONFIRMED:
        verdict = QrVerification(False, "This reservation is not valid", reservation)
    else:
        verdict = QrVerification(True, "Valid reservation", reservation)

    record_qr_verification(verdict.valid)
    logger.info(
        "qr_verified",
        valid=verdict.valid,
        reservation_id=reservation.id if reservation else None,
        status=reservation.status.value if reservation else None,
    )
    return verdict


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def render_ticket_pdf(reservation: Reservation) -> bytes:
    """Compact one-page ticket: event snapshot, holder, QR image and reference."""
    width, height = TICKET_PAGE_SIZE
    content_width = width - 2 * TICKET_MARGIN
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=TICKET_PAGE_SIZE)
    pdf.setTitle(f"Ticket {reservation.reservation_number}")

    # Header band
    pdf.setFillColor(colors.HexColor("#4F46E5"))
    pdf.rect(0, height - 90, width, 90, stroke=0, fill=1)
    pdf.setFillColor(colors.white)
    pdf.setFont("Helvetica-Bold", 22)
    pdf.drawCentredString(width / 2, height - 50, "PLANORA")
    pdf.setFont("Helvetica", 11)
    pdf.drawCentredString(width / 2, height - 72, "Admission ticket")

    y = height - 125
    pdf.setFillColor(colors.black)
    pdf.setFont("Helvetica-Bold", 15)
    pdf.drawString(TICKET_MARGIN, y, reservation.event_title[:40])

    details = [
        ("Date", reservation.event_date.strftime("%Y-%m-%d %H:%M UTC")),
        ("Location", reservation.event_location or "-"),
        ("Holder", reservation.user_name),
        ("Email", reservation.user_email),
        ("Tickets", str(reservation.number_of_tickets)),
        ("Total", f"{float(reservation.total_price):.2f}"),
        ("Status", reservation.status.value.replace("_", " ")),
    ]
    y -= 28
    for label, value in details:
        pdf.setFont("Helvetica-Bold", 10)
        pdf.setFillColor(colors.grey)
        pdf.drawString(TICKET_MARGIN, y, label.upper())
        pdf.setFont("Helvetica", 11)
        pdf.setFillColor(colors.black)
        pdf.drawString(TICKET_MARGIN + 80, y, value[:42])
        y -= 20

    qr_size = 180
    qr_image = ImageReader(io.BytesIO(render_qr_png(derive_qr_payload(reservation))))
    pdf.drawImage(qr_image, (width - qr_size) / 2, y - qr_size - 10, qr_size, qr_size)
    y -= qr_size + 30

    pdf.setFont("Courier-Bold", 11)
    pdf.drawCentredString(width / 2, y, reservation.reservation_number)
    pdf.setFont("Helvetica", 8)
    pdf.setFillColor(colors.grey)
    pdf.drawCentredString(width / 2, TICKET_MARGIN, "Present this ticket at the entrance.")
    pdf.line(TICKET_MARGIN, TICKET_MARGIN + 14, TICKET_MARGIN + content_width, TICKET_MARGIN + 14)

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


async def render_ticket(db: AsyncSession, reservation_id: int, principal: Principal) -> tuple[Reservation, bytes]:
    reservation = await reservation_store.get(db, reservation_id)

    if not principal.can_act_for(reservation.user_id):
        raise ForbiddenError("You are not allowed to access this ticket")
    if reservation.status not in TICKETABLE_STATUSES:
        raise InvalidStateError("Tickets are only available for confirmed reservations")

    document = render_ticket_pdf(reservation)
    logger.info("ticket_rendered", reservation_id=reservation.id, size=len(document))
    return reservation, document
