"""Weekly operations report.

Summarises the hospital's state for the week ending on a given date and
writes it as a PDF:

* Inventory size and the medications at or below their alert level.
* Replenish requests still waiting for an administrator, and those raised
  during the week.
* Appointments in the week by status.
* Outstanding and settled bills.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from stores import Database

LOGGER = logging.getLogger(__name__)

LINE_HEIGHT = 0.3 * inch
BOTTOM_MARGIN = 1 * inch


@dataclass
class OperationsSummary:
    """Figures shown in the weekly operations report."""

    week_start: date
    week_end: date
    total_medications: int = 0
    low_stock: List[str] = field(default_factory=list)
    pending_requests: List[str] = field(default_factory=list)
    requests_this_week: int = 0
    appointments_by_status: Dict[str, int] = field(default_factory=dict)
    unpaid_bills: int = 0
    unpaid_amount: float = 0.0
    paid_amount: float = 0.0


def week_range(week_ending: Optional[date] = None) -> tuple[date, date]:
    """Return the seven days ending on ``week_ending`` (today by default)."""

    end = week_ending or date.today()
    return end - timedelta(days=6), end


def summarise(database: Database, week_ending: Optional[date] = None) -> OperationsSummary:
    start, end = week_range(week_ending)
    summary = OperationsSummary(week_start=start, week_end=end)

    medications = sorted(database.medications.all(), key=lambda medication: medication.name)
    summary.total_medications = len(medications)
    summary.low_stock = [
        f"{medication.name}: {medication.current_stock} left (alert at {medication.low_stock_level_alert})"
        for medication in medications
        if medication.is_low_stock
    ]

    summary.pending_requests = [
        f"#{request.request_id} {request.medication_id} x{request.amount} by {request.staff_id}"
        for request in database.replenish_requests.list_active()
    ]
    summary.requests_this_week = sum(
        1 for request in database.replenish_requests if start <= request.request_date <= end
    )

    statuses = Counter(
        appointment.status.value
        for appointment in database.appointments
        if start <= appointment.date_time.date() <= end
    )
    summary.appointments_by_status = dict(sorted(statuses.items()))

    for outcome in database.outcomes:
        if outcome.is_paid:
            summary.paid_amount += outcome.total_amount
        else:
            summary.unpaid_bills += 1
            summary.unpaid_amount += outcome.total_amount
    summary.paid_amount = round(summary.paid_amount, 2)
    summary.unpaid_amount = round(summary.unpaid_amount, 2)

    LOGGER.info(
        "Operations summary %s to %s: %d low stock, %d pending requests, %d unpaid bills",
        start,
        end,
        len(summary.low_stock),
        len(summary.pending_requests),
        summary.unpaid_bills,
    )
    return summary


class _PageWriter:
    """Writes lines top to bottom, starting a new page when one fills up."""

    def __init__(self, pdf: canvas.Canvas) -> None:
        self._pdf = pdf
        self._y = 9.5 * inch

    def heading(self, text: str) -> None:
        self._y -= LINE_HEIGHT / 2
        self._line(text, "Helvetica-Bold", 12, 1 * inch)

    def item(self, text: str) -> None:
        self._line(text, "Helvetica", 11, 1.2 * inch)

    def _line(self, text: str, font: str, size: int, x: float) -> None:
        if self._y < BOTTOM_MARGIN:
            self._pdf.showPage()
            self._y = 10.5 * inch
        self._pdf.setFont(font, size)
        self._pdf.drawString(x, self._y, text)
        self._y -= LINE_HEIGHT


def _draw_header(pdf: canvas.Canvas, title: str, generated_at: datetime) -> None:
    pdf.setFont("Helvetica-Bold", 20)
    pdf.drawString(1 * inch, 10.5 * inch, title)
    pdf.setFont("Helvetica", 10)
    pdf.drawString(
        1 * inch,
        10.1 * inch,
        f"Generated on: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
    )


def _draw_summary(pdf: canvas.Canvas, summary: OperationsSummary) -> None:
    writer = _PageWriter(pdf)
    writer.heading("Reporting Period")
    writer.item(f"{summary.week_start.isoformat()} to {summary.week_end.isoformat()}")

    writer.heading("Inventory")
    writer.item(f"Medications tracked: {summary.total_medications}")
    writer.item(f"At or below alert level: {len(summary.low_stock)}")
    for line in summary.low_stock:
        writer.item(f"- {line}")

    writer.heading("Replenishment")
    writer.item(f"Requests raised this week: {summary.requests_this_week}")
    writer.item(f"Awaiting approval: {len(summary.pending_requests)}")
    for line in summary.pending_requests:
        writer.item(f"- {line}")

    writer.heading("Appointments This Week")
    if summary.appointments_by_status:
        for status, count in summary.appointments_by_status.items():
            writer.item(f"{status.capitalize()}: {count}")
    else:
        writer.item("No appointments in this period.")

    writer.heading("Billing")
    writer.item(f"Unpaid bills: {summary.unpaid_bills} ({summary.unpaid_amount:.2f})")
    writer.item(f"Collected: {summary.paid_amount:.2f}")


def _report_path(output_dir: Path, week_end: date) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    iso_week = week_end.isocalendar()
    return output_dir / f"operations_report_{iso_week.year}-W{iso_week.week:02d}.pdf"


def create_operations_report(summary: OperationsSummary, output_dir: Path) -> Path:
    report_path = _report_path(Path(output_dir), summary.week_end)
    pdf = canvas.Canvas(str(report_path), pagesize=letter)
    _draw_header(pdf, "Weekly Operations Report", datetime.now())
    _draw_summary(pdf, summary)
    pdf.showPage()
    pdf.save()
    LOGGER.info("Operations report created at %s", report_path)
    return report_path


def build_operations_report(
    database: Database, output_dir: Path, week_ending: Optional[date] = None
) -> Path:
    return create_operations_report(summarise(database, week_ending), output_dir)
