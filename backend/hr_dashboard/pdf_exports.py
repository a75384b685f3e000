from __future__ import annotations

import logging
import re
from datetime import date, datetime
from functools import partial
from io import BytesIO
from typing import Any, Mapping, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    CondPageBreak,
    Flowable,
    KeepTogether,
    LongTable,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    TableStyle,
)

from .aggregation import attendance_status
from .grid import active_filter_items

logger = logging.getLogger(__name__)

DEFAULT_COMPANY_NAME = "BizSmart Enterprises Ltd"

PAGE_SIZE = landscape(A4)
PAGE_WIDTH, PAGE_HEIGHT = PAGE_SIZE
LEFT_MARGIN = 15 * mm
RIGHT_MARGIN = 15 * mm
BOTTOM_MARGIN = 18 * mm
CONTENT_WIDTH = PAGE_WIDTH - LEFT_MARGIN - RIGHT_MARGIN

HEADER_TOP_MARGIN = 12 * mm
HEADER_HEIGHT = 20 * mm
HEADER_AFTER_GAP = 6 * mm
HEADER_COMPANY_FONT_SIZE = 20.0
HEADER_SUBTITLE_FONT_SIZE = 12.0

# Space the main table needs below its heading before it may start on the current page.
MAIN_TABLE_MIN_HEIGHT = 60 * mm

KPI_GAP_X = 10.0
KPI_GAP_Y = 11.0
KPI_GAP_AFTER = 16.0
KPI_CARD_HEIGHT = 56.0
KPI_CARD_RADIUS = 7.0
KPI_CARD_PAD_X = 10.0
KPI_CARD_PAD_Y = 10.0
KPI_VALUE_FONT_SIZE = 13
KPI_LABEL_FONT_SIZE = 8

PALETTE = {
    "brand": colors.Color(23 / 255.0, 80 / 255.0, 59 / 255.0),
    "text": colors.HexColor("#0F172A"),
    "muted": colors.HexColor("#64748B"),
    "line": colors.HexColor("#D1D5DB"),
    "card_fill": colors.HexColor("#F8FDF9"),
    "card_stroke": colors.HexColor("#CBD5E1"),
    "stripe_even": colors.white,
    "stripe_odd": colors.Color(248 / 255.0, 253 / 255.0, 249 / 255.0),
    "grid": colors.HexColor("#E2E8F0"),
    "totals": colors.HexColor("#E3F0E8"),
}

_STYLES = getSampleStyleSheet()
TITLE_STYLE = ParagraphStyle(
    "report-title",
    parent=_STYLES["Heading2"],
    fontName="Helvetica-Bold",
    fontSize=18,
    leading=22,
    textColor=PALETTE["text"],
    spaceAfter=4,
)
META_STYLE = ParagraphStyle(
    "report-meta",
    parent=_STYLES["BodyText"],
    fontName="Helvetica",
    fontSize=11,
    leading=14,
    textColor=PALETTE["muted"],
)
FILTER_ITEM_STYLE = ParagraphStyle(
    "filter-item",
    parent=META_STYLE,
    leftIndent=5 * mm,
    textColor=PALETTE["text"],
)
SECTION_HEADING_STYLE = ParagraphStyle(
    "section-heading",
    parent=_STYLES["Heading5"],
    fontName="Helvetica-Bold",
    fontSize=14,
    leading=17,
    textColor=PALETTE["text"],
    spaceAfter=6,
)
TABLE_HEADER_STYLE = ParagraphStyle(
    "table-header",
    parent=_STYLES["BodyText"],
    fontName="Helvetica-Bold",
    fontSize=10,
    leading=12,
    textColor=colors.white,
    wordWrap="CJK",
)
TABLE_CELL_STYLE = ParagraphStyle(
    "table-cell",
    parent=_STYLES["BodyText"],
    fontName="Helvetica",
    fontSize=9,
    leading=11,
    textColor=PALETTE["text"],
    wordWrap="CJK",
)
TABLE_TOTAL_STYLE = ParagraphStyle(
    "table-total",
    parent=TABLE_CELL_STYLE,
    fontName="Helvetica-Bold",
)


class PdfExportError(Exception):
    pass


class NoDataError(PdfExportError):
    pass


class PdfLayoutError(PdfExportError):
    pass


def _safe_text(value: Any, *, fallback: str = "-") -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text if text else fallback


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _format_hours(value: Any) -> str:
    return f"{_to_float(value):.2f}h"


def _shown_hours(record: Mapping[str, Any]) -> float:
    if "display_hours" in record:
        return _to_float(record.get("display_hours"))
    return _to_float(record.get("total_hours"))


def format_report_date(value: str) -> str:
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        return _safe_text(value, fallback="")
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def _fit_text(canv: canvas.Canvas, text: str, *, font_name: str, font_size: float, max_width: float) -> str:
    if max_width <= 0:
        return ""

    cleaned = _safe_text(text, fallback="")
    if not cleaned:
        return ""

    if canv.stringWidth(cleaned, font_name, font_size) <= max_width:
        return cleaned

    suffix = "..."
    clipped = cleaned
    while clipped and canv.stringWidth(clipped + suffix, font_name, font_size) > max_width:
        clipped = clipped[:-1]
    return (clipped + suffix) if clipped else suffix


def _cell_paragraph(value: Any, *, style: ParagraphStyle, fallback: str = "-") -> Paragraph:
    text = _safe_text(value, fallback=fallback)
    return Paragraph(escape(text), style)


def draw_header(
    canv: canvas.Canvas,
    page_width: float,
    page_height: float,
    *,
    company_name: str,
    subtitle: str,
) -> None:
    top = page_height - HEADER_TOP_MARGIN
    right_x = page_width - RIGHT_MARGIN
    max_width = CONTENT_WIDTH * 0.6

    canv.saveState()
    canv.setFillColor(PALETTE["text"])
    canv.setFont("Helvetica-Bold", HEADER_COMPANY_FONT_SIZE)
    canv.drawRightString(
        right_x,
        top - HEADER_COMPANY_FONT_SIZE,
        _fit_text(
            canv,
            company_name,
            font_name="Helvetica-Bold",
            font_size=HEADER_COMPANY_FONT_SIZE,
            max_width=max_width,
        ),
    )

    canv.setFillColor(PALETTE["muted"])
    canv.setFont("Helvetica", HEADER_SUBTITLE_FONT_SIZE)
    canv.drawRightString(right_x, top - HEADER_COMPANY_FONT_SIZE - 16, subtitle)

    header_bottom = top - HEADER_HEIGHT
    canv.setStrokeColor(PALETTE["brand"])
    canv.setLineWidth(1.2)
    canv.line(LEFT_MARGIN, header_bottom, right_x, header_bottom)
    canv.restoreState()


class NumberedCanvas(canvas.Canvas):
    def __init__(self, *args: Any, attribution: str = "", **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._attribution = attribution
        self._saved_page_states: list[dict[str, Any]] = []

    def showPage(self) -> None:
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def _draw_footer(self, total_pages: int) -> None:
        page_width = self._pagesize[0]
        line_y = 13 * mm
        text_y = 9 * mm

        self.saveState()
        self.setStrokeColor(PALETTE["line"])
        self.setLineWidth(0.5)
        self.line(LEFT_MARGIN, line_y, page_width - RIGHT_MARGIN, line_y)

        self.setFillColor(PALETTE["muted"])
        self.setFont("Helvetica", 9)
        self.drawString(LEFT_MARGIN, text_y, self._attribution)
        self.drawRightString(page_width - RIGHT_MARGIN, text_y, f"Page {self._pageNumber} of {total_pages}")
        self.restoreState()


class KpiRow(Flowable):
    def __init__(self, *, cards: Sequence[dict[str, str]], cols: int, gap: float = KPI_GAP_X, card_h: float = KPI_CARD_HEIGHT) -> None:
        super().__init__()
        self.cards = list(cards)
        self.cols = max(1, cols)
        self.gap = gap
        self.card_h = card_h
        self.width = CONTENT_WIDTH
        self.height = card_h

    def wrap(self, avail_width: float, avail_height: float) -> tuple[float, float]:
        return self.width, self.height

    def draw(self) -> None:
        card_w = (self.width - (self.gap * (self.cols - 1))) / self.cols
        canv = self.canv
        canv.saveState()
        for index, card in enumerate(self.cards[: self.cols]):
            x = index * (card_w + self.gap)
            max_text_width = max(0.0, card_w - (KPI_CARD_PAD_X * 2))
            value_draw = _fit_text(
                canv,
                _safe_text(card.get("value"), fallback="N/A"),
                font_name="Helvetica-Bold",
                font_size=KPI_VALUE_FONT_SIZE,
                max_width=max_text_width,
            )
            label_draw = _fit_text(
                canv,
                _safe_text(card.get("label")),
                font_name="Helvetica",
                font_size=KPI_LABEL_FONT_SIZE,
                max_width=max_text_width,
            )

            canv.setFillColor(PALETTE["card_fill"])
            canv.setStrokeColor(PALETTE["card_stroke"])
            canv.setLineWidth(0.8)
            canv.roundRect(x, 0, card_w, self.card_h, KPI_CARD_RADIUS, stroke=1, fill=1)

            canv.setFillColor(PALETTE["brand"])
            canv.setFont("Helvetica-Bold", KPI_VALUE_FONT_SIZE)
            canv.drawString(x + KPI_CARD_PAD_X, self.card_h - KPI_CARD_PAD_Y - KPI_VALUE_FONT_SIZE, value_draw)

            canv.setFillColor(PALETTE["muted"])
            canv.setFont("Helvetica", KPI_LABEL_FONT_SIZE)
            canv.drawString(x + KPI_CARD_PAD_X, KPI_CARD_PAD_Y, label_draw)
        canv.restoreState()


def _build_section_heading(text: str) -> Paragraph:
    return Paragraph(escape(_safe_text(text, fallback="Section")), SECTION_HEADING_STYLE)


def _build_table(
    *,
    headers: Sequence[str],
    body_rows: Sequence[Sequence[Any]],
    col_widths: Sequence[float],
    total_rows: Sequence[tuple[str, str]] | None = None,
    align_right: Sequence[int] = (),
    align_center: Sequence[int] = (),
) -> LongTable:
    header = [_cell_paragraph(cell, style=TABLE_HEADER_STYLE, fallback="") for cell in headers]
    table_data: list[list[Any]] = [header]

    for row in body_rows:
        normalized = [_cell_paragraph(cell, style=TABLE_CELL_STYLE, fallback="-") for cell in row]
        if len(normalized) < len(headers):
            normalized.extend(
                [_cell_paragraph("", style=TABLE_CELL_STYLE, fallback="") for _ in range(len(headers) - len(normalized))]
            )
        table_data.append(normalized[: len(headers)])

    total_start = -1
    if total_rows:
        total_start = len(table_data)
        for label, value in total_rows:
            row = [_cell_paragraph("", style=TABLE_CELL_STYLE, fallback="") for _ in headers]
            row[0] = _cell_paragraph(label, style=TABLE_TOTAL_STYLE)
            row[-1] = _cell_paragraph(value, style=TABLE_TOTAL_STYLE, fallback="N/A")
            table_data.append(row)

    table = LongTable(table_data, colWidths=list(col_widths), repeatRows=1, hAlign="LEFT")

    style_commands: list[tuple[Any, ...]] = [
        ("BACKGROUND", (0, 0), (-1, 0), PALETTE["brand"]),
        ("GRID", (0, 0), (-1, -1), 0.4, PALETTE["grid"]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 5),
        ("RIGHTPADDING", (0, 0), (-1, -1), 5),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for column in align_right:
        style_commands.append(("ALIGN", (column, 1), (column, -1), "RIGHT"))
    for column in align_center:
        style_commands.append(("ALIGN", (column, 1), (column, -1), "CENTER"))

    body_end = (total_start - 1) if total_start >= 0 else len(table_data) - 1
    for row_index in range(1, body_end + 1):
        background = PALETTE["stripe_even"] if row_index % 2 else PALETTE["stripe_odd"]
        style_commands.append(("BACKGROUND", (0, row_index), (-1, row_index), background))

    if total_start >= 0:
        for row_index in range(total_start, len(table_data)):
            style_commands.append(("BACKGROUND", (0, row_index), (-1, row_index), PALETTE["totals"]))
            if len(headers) > 2:
                style_commands.append(("SPAN", (0, row_index), (len(headers) - 2, row_index)))

    table.setStyle(TableStyle(style_commands))
    return table


def _build_document(*, subtitle: str, company_name: str, story: Sequence[Any]) -> bytes:
    buffer = BytesIO()

    def _draw_page_header(canv: canvas.Canvas, doc: SimpleDocTemplate) -> None:
        draw_header(
            canv,
            page_width=doc.pagesize[0],
            page_height=doc.pagesize[1],
            company_name=company_name,
            subtitle=subtitle,
        )

    doc = SimpleDocTemplate(
        buffer,
        pagesize=PAGE_SIZE,
        leftMargin=LEFT_MARGIN,
        rightMargin=RIGHT_MARGIN,
        topMargin=HEADER_TOP_MARGIN + HEADER_HEIGHT + HEADER_AFTER_GAP,
        bottomMargin=BOTTOM_MARGIN,
        title=subtitle,
        author=company_name,
    )

    doc.build(
        list(story),
        onFirstPage=_draw_page_header,
        onLaterPages=_draw_page_header,
        canvasmaker=partial(NumberedCanvas, attribution=f"© {date.today().year} {company_name}"),
    )
    return buffer.getvalue()


def _filter_block(filters: Mapping[str, Any] | None) -> list[Any]:
    items = active_filter_items(filters)
    if not items:
        return []
    block: list[Any] = [Spacer(1, 4), Paragraph("<b>Applied Filters:</b>", META_STYLE)]
    for key, value in items:
        label = key.replace("_", " ")
        label = label[:1].upper() + label[1:]
        block.append(Paragraph(escape(f"• {label}: {value}"), FILTER_ITEM_STYLE))
    return [KeepTogether(block)]


def _summary_block(summary_stats: Mapping[str, Any]) -> list[Any]:
    rows = [
        ["Total Employees", str(int(_to_float(summary_stats.get("total_employees"))))],
        ["Total Hours", _format_hours(summary_stats.get("total_hours"))],
        ["Currently Clocked In", str(int(_to_float(summary_stats.get("currently_clocked"))))],
        ["Average Hours/Employee", _format_hours(summary_stats.get("avg_hours_per_employee"))],
    ]
    table = _build_table(
        headers=["Metric", "Value"],
        body_rows=rows,
        col_widths=[60 * mm, 40 * mm],
        align_right=[1],
    )
    return [KeepTogether([Spacer(1, 12), _build_section_heading("Summary Statistics"), table])]


def _work_hours_columns(is_range: bool) -> list[tuple[str, float]]:
    if is_range:
        return [
            ("Employee ID", 0.09),
            ("Name", 0.16),
            ("Days", 0.06),
            ("Department", 0.13),
            ("Designation", 0.13),
            ("First In", 0.08),
            ("Last Out", 0.08),
            ("Total Hours", 0.09),
            ("Avg/Day", 0.08),
            ("Status", 0.10),
        ]
    return [
        ("Employee ID", 0.10),
        ("Name", 0.20),
        ("Department", 0.15),
        ("Designation", 0.15),
        ("Time In", 0.09),
        ("Time Out", 0.09),
        ("Total Hours", 0.10),
        ("Status", 0.12),
    ]


def _work_hours_row(record: Mapping[str, Any], is_range: bool) -> list[str]:
    status_text = attendance_status(record)
    if is_range:
        return [
            _safe_text(record.get("employee"), fallback=""),
            _safe_text(record.get("name"), fallback=""),
            str(int(_to_float(record.get("days_worked")))),
            _safe_text(record.get("department"), fallback=""),
            _safe_text(record.get("designation"), fallback=""),
            _safe_text(record.get("earliest_time_in")),
            _safe_text(record.get("latest_time_out")),
            _format_hours(_shown_hours(record)),
            _format_hours(record.get("average_hours_per_day")),
            status_text,
        ]
    return [
        _safe_text(record.get("employee"), fallback=""),
        _safe_text(record.get("name"), fallback=""),
        _safe_text(record.get("department"), fallback=""),
        _safe_text(record.get("designation"), fallback=""),
        _safe_text(record.get("time_in")),
        _safe_text(record.get("time_out")),
        _format_hours(_shown_hours(record)),
        status_text,
    ]


def generate_work_hours_pdf(
    records: Sequence[Mapping[str, Any]],
    *,
    start_date: str,
    end_date: str | None = None,
    filters: Mapping[str, Any] | None = None,
    summary_stats: Mapping[str, Any] | None = None,
    company_name: str = DEFAULT_COMPANY_NAME,
    generated_at: datetime | None = None,
) -> bytes:
    if not records:
        raise NoDataError("No data to export")

    end = end_date or start_date
    is_range = end != start_date
    stamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %I:%M %p")
    title = (
        f"Work Hours Report: {format_report_date(start_date)} to {format_report_date(end)}"
        if is_range
        else f"Work Hours Report: {format_report_date(start_date)}"
    )

    story: list[Any] = [
        Paragraph(escape(title), TITLE_STYLE),
        Paragraph(escape(f"Generated on: {stamp}"), META_STYLE),
    ]
    story.extend(_filter_block(filters))

    if summary_stats:
        try:
            story.extend(_summary_block(summary_stats))
        except Exception as exc:
            logger.warning("Skipping summary table in work hours PDF: %s", exc)

    columns = _work_hours_columns(is_range)
    headers = [label for label, _ in columns]
    right = [headers.index("Total Hours")] + ([headers.index("Avg/Day")] if is_range else [])
    center = [headers.index(label) for label in headers if label in {"Days", "Time In", "Time Out", "First In", "Last Out"}]

    try:
        main_table = _build_table(
            headers=headers,
            body_rows=[_work_hours_row(record, is_range) for record in records],
            col_widths=[CONTENT_WIDTH * share for _, share in columns],
            align_right=right,
            align_center=center,
        )
    except Exception as exc:
        raise PdfLayoutError(f"Failed to create main data table: {exc}") from exc

    story.append(Spacer(1, 12))
    story.append(CondPageBreak(MAIN_TABLE_MIN_HEIGHT))
    story.append(_build_section_heading("Employee Work Hours"))
    story.append(main_table)

    try:
        return _build_document(subtitle="Work Hours Report", company_name=company_name, story=story)
    except Exception as exc:
        raise PdfLayoutError(f"Failed to create main data table: {exc}") from exc


def work_hours_pdf_filename(start_date: str, end_date: str | None = None, filters: Mapping[str, Any] | None = None) -> str:
    end = end_date or start_date
    date_range = start_date if end == start_date else f"{start_date}_to_{end}"
    suffix = "_filtered" if active_filter_items(filters) else ""
    return f"work_hours_report_{date_range}{suffix}.pdf"


def _attendance_cards(records: Sequence[Mapping[str, Any]]) -> list[dict[str, str]]:
    days = len(records)
    total_hours = sum(_shown_hours(record) for record in records)
    clocked_in = sum(1 for record in records if record.get("is_currently_clocked_in"))
    return [
        {"label": "Days Worked", "value": str(days)},
        {"label": "Total Hours", "value": _format_hours(total_hours)},
        {"label": "Avg Hours/Day", "value": _format_hours(total_hours / days if days else 0)},
        {"label": "Open Shifts", "value": str(clocked_in)},
    ]


def generate_employee_attendance_pdf(
    records: Sequence[Mapping[str, Any]],
    *,
    employee_name: str,
    start_date: str,
    end_date: str,
    company_name: str = DEFAULT_COMPANY_NAME,
    generated_at: datetime | None = None,
) -> bytes:
    if not records:
        raise NoDataError("No data to export")

    stamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %I:%M %p")
    first = records[0]
    total_hours = sum(_shown_hours(record) for record in records)

    story: list[Any] = [
        Paragraph(escape(f"{employee_name} Attendance"), TITLE_STYLE),
        Paragraph(
            escape(
                f"{_safe_text(first.get('employee'), fallback='')} | "
                f"{_safe_text(first.get('department'), fallback='')} | "
                f"{format_report_date(start_date)} to {format_report_date(end_date)}"
            ),
            META_STYLE,
        ),
        Paragraph(escape(f"Generated on: {stamp}"), META_STYLE),
        Spacer(1, 10),
        KpiRow(cards=_attendance_cards(records), cols=4),
        Spacer(1, KPI_GAP_AFTER),
    ]

    try:
        table = _build_table(
            headers=["Date", "Time In", "Time Out", "Total Hours", "Status"],
            body_rows=[
                [
                    _safe_text(record.get("date")),
                    _safe_text(record.get("time_in")),
                    _safe_text(record.get("time_out")),
                    _format_hours(_shown_hours(record)),
                    attendance_status(record),
                ]
                for record in records
            ],
            col_widths=[
                CONTENT_WIDTH * 0.22,
                CONTENT_WIDTH * 0.18,
                CONTENT_WIDTH * 0.18,
                CONTENT_WIDTH * 0.20,
                CONTENT_WIDTH * 0.22,
            ],
            total_rows=[("Total Hours", _format_hours(total_hours))],
            align_right=[3],
            align_center=[1, 2],
        )
    except Exception as exc:
        raise PdfLayoutError(f"Failed to create main data table: {exc}") from exc

    story.append(CondPageBreak(MAIN_TABLE_MIN_HEIGHT))
    story.append(_build_section_heading("Daily Attendance"))
    story.append(table)

    try:
        return _build_document(subtitle="Attendance Report", company_name=company_name, story=story)
    except Exception as exc:
        raise PdfLayoutError(f"Failed to create main data table: {exc}") from exc


def employee_attendance_filename(employee_name: str, start_date: str, end_date: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "_", _safe_text(employee_name, fallback="employee")).strip("_") or "employee"
    return f"{slug}_attendance_{start_date}_to_{end_date}.pdf"
