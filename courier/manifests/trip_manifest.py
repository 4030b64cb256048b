# courier/manifests/trip_manifest.py
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

import structlog
from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas as pdfcanvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from courier.errors import NotFoundError
from courier.manifests.pdf_common import (
    FONT,
    FONT_BOLD,
    clean_filename_keep_spaces,
    depot_label,
    fmt_date_ddmmyyyy,
    fmt_money,
    grid_table_style,
    manifests_root,
    table_base_style,
)
from courier.models import db, Trip
from courier.trips.assignment import bookings_for_trip

logger = structlog.get_logger(__name__)


def _package_summary(booking) -> str:
    parts = []
    for line in booking.package_lines:
        label = line.package_size or "Custom"
        if line.description:
            label = f"{label} ({line.description})"
        parts.append(f"{line.quantity} x {label}")
    return "; ".join(parts) or "-"


def manifest_rows(trip_id: str) -> List[Dict[str, Any]]:
    """
    One printable row per booking on the trip, in bookings_for_trip order
    (newest first, junction fallback included).
    """
    rows: List[Dict[str, Any]] = []
    for idx, b in enumerate(bookings_for_trip(trip_id), start=1):
        receivers = list(b.receivers)
        rows.append({
            "sl_no": idx,
            "receipt_number": b.receipt_number,
            "sender": " / ".join(x for x in (b.sender_name, b.sender_phone) if x) or "-",
            "receivers": [
                {
                    "name": r.receiver_name,
                    "phone": r.receiver_phone,
                    "address": r.delivery_address,
                }
                for r in receivers
            ],
            "destination": depot_label(b.destination_depot),
            "delivery_type": b.delivery_type,
            "packages": _package_summary(b),
            "quantity": sum(line.quantity or 0 for line in b.package_lines),
            "payment_method": b.payment_method,
            "total_amount": float(b.total_amount or 0.0),
            "status": b.status,
        })
    return rows


def default_manifest_path(trip: Trip) -> Path:
    name = clean_filename_keep_spaces(f"Manifest {trip.trip_number}.pdf")
    return manifests_root() / name


def generate_trip_manifest_pdf(trip_id: str, out_path: Optional[Path] = None) -> Path:
    trip = db.session.get(Trip, trip_id)
    if trip is None:
        raise NotFoundError("Trip", trip_id)

    out_path = Path(out_path) if out_path else default_manifest_path(trip)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    rows = manifest_rows(trip_id)

    styles = getSampleStyleSheet()
    normal = ParagraphStyle(
        "normal",
        parent=styles["Normal"],
        fontName=FONT,
        fontSize=9,
        leading=10.35,
    )
    bold = ParagraphStyle("bold", parent=normal, fontName=FONT_BOLD)
    title = ParagraphStyle("title", parent=bold, fontSize=14, leading=17)
    money_right = ParagraphStyle("money_right", parent=normal, alignment=TA_RIGHT)
    money_right_bold = ParagraphStyle("money_right_bold", parent=bold, alignment=TA_RIGHT)

    class FooterCanvas(pdfcanvas.Canvas):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self._saved_page_states = []

        def showPage(self):
            self._saved_page_states.append(dict(self.__dict__))
            self._startPage()

        def save(self):
            total_pages = len(self._saved_page_states)
            for state in self._saved_page_states:
                self.__dict__.update(state)
                self._draw_footer(total_pages)
                super().showPage()
            super().save()

        def _draw_footer(self, total_pages: int):
            self.saveState()
            self.setFont(FONT, 8)
            y = 8 * mm
            self.drawString(doc.leftMargin, y, f"Trip {trip.trip_number}")
            self.drawRightString(
                doc.pagesize[0] - doc.rightMargin,
                y,
                f"Page {self.getPageNumber()} of {total_pages}",
            )
            self.restoreState()

    doc = SimpleDocTemplate(
        str(out_path),
        pagesize=landscape(A4),
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=14 * mm,
        title=f"Trip manifest {trip.trip_number}",
    )

    story: List[Any] = []
    story.append(Paragraph(f"Trip Manifest : {escape(trip.trip_number)}", title))
    story.append(Spacer(1, 8))

    details = [
        ("Trip Type", "Forwarding" if trip.is_forwarding else "Origin"),
        ("From", depot_label(trip.origin_depot)),
        ("To", depot_label(trip.destination_depot)),
        ("Driver", " / ".join(x for x in (trip.driver_name, trip.driver_phone) if x)),
        ("Vehicle", trip.vehicle_number or ""),
        ("Departure", fmt_date_ddmmyyyy(trip.departure_time)),
        ("Status", trip.status),
    ]
    details_tbl = Table(
        [[Paragraph(label, bold), Paragraph(escape(value or "-"), normal)] for label, value in details],
        colWidths=[35 * mm, 90 * mm],
        hAlign="LEFT",
    )
    details_tbl.setStyle(TableStyle(table_base_style() + [("GRID", (0, 0), (-1, -1), 0.6, colors.black)]))
    story.append(details_tbl)
    story.append(Spacer(1, 10))

    header = ["Sl", "Receipt No.", "Sender", "Receiver(s)", "Destination", "Packages", "Qty", "Payment", "Amount"]
    data: List[List[Any]] = [header]
    grand_total = 0.0
    total_qty = 0

    for row in rows:
        receiver_text = "<br/>".join(
            escape(" / ".join(x for x in (r["name"], r["phone"]) if x)) for r in row["receivers"]
        ) or "-"
        data.append([
            str(row["sl_no"]),
            Paragraph(escape(row["receipt_number"]), normal),
            Paragraph(escape(row["sender"]), normal),
            Paragraph(receiver_text, normal),
            Paragraph(escape(row["destination"]), normal),
            Paragraph(escape(row["packages"]), normal),
            str(row["quantity"]),
            Paragraph(escape(row["payment_method"].replace("_", " ").upper()), normal),
            Paragraph(fmt_money(row["total_amount"]), money_right),
        ])
        grand_total += row["total_amount"]
        total_qty += row["quantity"]

    data.append([
        "",
        Paragraph("Total", bold),
        "",
        "",
        "",
        "",
        str(total_qty),
        "",
        Paragraph(fmt_money(grand_total), money_right_bold),
    ])

    w = doc.width
    col_widths = [
        10 * mm,
        0.13 * w,
        0.14 * w,
        0.17 * w,
        0.12 * w,
        0.17 * w,
        12 * mm,
        0.09 * w,
    ]
    col_widths.append(w - sum(col_widths))

    manifest_tbl = Table(data, colWidths=col_widths, repeatRows=1)
    manifest_tbl.setStyle(
        TableStyle(
            grid_table_style()
            + [
                ("ALIGN", (6, 1), (6, -1), "CENTER"),
                ("FONTNAME", (0, -1), (-1, -1), FONT_BOLD),
            ]
        )
    )
    story.append(manifest_tbl)
    story.append(Spacer(1, 6))
    story.append(
        Paragraph(
            f"Printed on {fmt_date_ddmmyyyy(datetime.utcnow())} : {len(rows)} booking(s)",
            normal,
        )
    )

    doc.build(story, canvasmaker=FooterCanvas)

    logger.info("trip_manifest_generated", trip_id=trip_id, bookings=len(rows), path=str(out_path))
    return out_path
