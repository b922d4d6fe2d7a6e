"""PDF purchase receipts (reportlab)."""

import io
from datetime import datetime
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from coursehub.models import Course, Payment, User
from coursehub.models.base import utc_now

TABLE_STYLE = TableStyle([
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1E3A5F")),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("ALIGN", (-1, 0), (-1, -1), "RIGHT"),
])


def render_receipt(
    user: User,
    course: Course,
    payment: Optional[Payment] = None,
    issued_at: Optional[datetime] = None,
) -> bytes:
    """Render a one-page receipt and return the PDF bytes."""
    issued_at = issued_at or (payment.created_at if payment else None) or utc_now()
    amount = payment.amount if payment else course.price
    currency = (payment.currency if payment else "usd").upper()

    stream = io.BytesIO()
    doc = SimpleDocTemplate(stream, pagesize=A4, title=f"Receipt - {course.title}")
    styles = getSampleStyleSheet()

    elems = [
        Paragraph("<b>Payment Receipt</b>", styles["Title"]),
        Paragraph(f"Date: {issued_at.strftime('%Y-%m-%d %H:%M UTC')}", styles["Normal"]),
    ]
    if payment:
        elems.append(Paragraph(f"Transaction: {payment.transaction_id}", styles["Normal"]))
    elems.append(Spacer(1, 0.5 * cm))

    name = user.full_name or user.username
    elems.append(Paragraph(f"Billed to: {name} ({user.email})", styles["Normal"]))
    elems.append(Spacer(1, 0.5 * cm))

    table = Table(
        [
            ["Course", "Amount"],
            [course.title, f"{amount:.2f} {currency}"],
            ["Total", f"{amount:.2f} {currency}"],
        ],
        colWidths=[12 * cm, 4 * cm],
    )
    table.setStyle(TABLE_STYLE)
    elems.append(table)

    elems.append(Spacer(1, 1 * cm))
    elems.append(Paragraph("Thank you for your purchase.", styles["Normal"]))

    doc.build(elems)
    return stream.getvalue()
