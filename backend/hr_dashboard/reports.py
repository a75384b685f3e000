from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Sequence

from fastapi import HTTPException, status

from .aggregation import (
    aggregate_work_hours,
    attendance_status,
    hours_tier,
    normalize_leave_balance,
    normalize_work_hour,
    on_leave_keys,
    summarize_work_hours,
    with_display_hours,
)
from .config import ErpSettings
from .erp_client import ErpClient, ErpError
from .grid import (
    CARD_PAGE_SIZES,
    DEFAULT_CARD_PAGE_SIZE,
    DEFAULT_TABLE_PAGE_SIZE,
    SORT_DIRECTIONS,
    TABLE_PAGE_SIZES,
    VIEW_MODES,
    CardRenderer,
    Column,
    FilterSpec,
    GridState,
    apply_query,
    build_view,
    filter_controls,
    run_grid,
    stringify,
)
from .metrics import compute_dashboard_metrics, department_analysis, leave_type_breakdown

logger = logging.getLogger(__name__)

_STATUS_TONES = {
    "active": "success",
    "inactive": "warning",
    "left": "error",
}
_HOURS_TONES = {
    "full": "success",
    "partial": "warning",
    "short": "error",
}
_REMAINING_TONES = {
    "high": "success",
    "medium": "warning",
    "low": "error",
}


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _initial(value: Any) -> str:
    text = _clean_text(value)
    return text[:1].upper() if text else "?"


def _format_hours(value: Any) -> str:
    try:
        hours = float(value or 0)
    except (TypeError, ValueError):
        hours = 0.0
    return f"{hours:.2f}h"


def _format_time(value: Any) -> str:
    return _clean_text(value) or "-"


def _parse_date(date_value: str, field_name: str = "date") -> date:
    try:
        return datetime.strptime(date_value, "%Y-%m-%d").date()
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field_name} must be in YYYY-MM-DD format",
        ) from exc


def resolve_period(
    settings: ErpSettings,
    *,
    date_value: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> tuple[str, str]:
    start_text = start_date or date_value or date.today().isoformat()
    end_text = end_date or start_text

    start = _parse_date(start_text, "start_date")
    end = _parse_date(end_text, "end_date")
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Start date cannot be after end date",
        )
    if (end - start).days > settings.max_range_days:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Date range cannot exceed {settings.max_range_days} days",
        )
    return start.isoformat(), end.isoformat()


def report_value(record: Mapping[str, Any], field_name: str) -> Any:
    if field_name == "total_hours" and "display_hours" in record:
        return record["display_hours"]
    return record.get(field_name)


def _as_rows(payload: Any) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        return []
    return [dict(item) for item in payload if isinstance(item, Mapping)]


def fetch_employees(client: ErpClient) -> List[Dict[str, Any]]:
    employees: list[dict[str, Any]] = []
    for row in _as_rows(client.fetch_employees()):
        employee = _clean_text(row.get("employee"))
        if not employee:
            continue
        row["employee"] = employee
        row["employee_name"] = _clean_text(row.get("employee_name")) or employee
        employees.append(row)
    return employees


def fetch_leave_balances(client: ErpClient) -> List[Dict[str, Any]]:
    payload = client.fetch_leave_dashboard()
    if not isinstance(payload, Mapping):
        return []
    keys = on_leave_keys(_as_rows(payload.get("on_leave")))
    return [normalize_leave_balance(row, keys) for row in _as_rows(payload.get("leave_balances"))]


def fetch_daily_work_hours(client: ErpClient, start_date: str, end_date: str) -> List[Dict[str, Any]]:
    rows = _as_rows(client.fetch_work_hours(start_date=start_date, end_date=end_date))
    records = [normalize_work_hour(row) for row in rows]
    if start_date == end_date:
        for record in records:
            record["date"] = record["date"] or start_date
    return records


def fetch_work_hours(
    client: ErpClient,
    start_date: str,
    end_date: str,
    policy: str = "backend",
) -> List[Dict[str, Any]]:
    # The open shift policy applies per day, before any range rollup.
    daily = with_display_hours(fetch_daily_work_hours(client, start_date, end_date), policy)
    if start_date == end_date:
        return daily
    return aggregate_work_hours(daily)


@dataclass(frozen=True)
class ReportView:
    name: str
    columns: tuple[Column, ...]
    searchable_fields: tuple[str, ...]
    filters: tuple[FilterSpec, ...]
    default_sort: str
    empty_message: str
    error_message: str
    render_card: CardRenderer

    def default_page_size(self, mode: str) -> int:
        return DEFAULT_TABLE_PAGE_SIZE if mode == "table" else DEFAULT_CARD_PAGE_SIZE


def _badge(text: str, tone: str) -> dict[str, str]:
    return {"text": text, "tone": tone}


def _employee_status_badge(value: Any, row: Mapping[str, Any], index: int) -> dict[str, str]:
    text = _clean_text(value)
    return _badge(text, _STATUS_TONES.get(text.lower(), "muted"))


def _name_cell(value: Any, row: Mapping[str, Any], index: int) -> dict[str, str]:
    return {"text": _clean_text(value), "initial": _initial(value)}


def _employee_card(row: Mapping[str, Any], index: int) -> dict[str, Any]:
    return {
        "title": _clean_text(row.get("employee_name")),
        "subtitle": " • ".join(
            part for part in (_clean_text(row.get("employee")), _clean_text(row.get("designation"))) if part
        ),
        "initial": _initial(row.get("employee_name")),
        "image": row.get("image") or None,
        "badge": _employee_status_badge(row.get("status"), row, index),
        "details": {
            "Department": _clean_text(row.get("department")) or "-",
            "Company": _clean_text(row.get("company")) or "-",
            "Branch": _clean_text(row.get("branch")) or "-",
            "Email": _clean_text(row.get("company_email")) or "-",
            "Phone": _clean_text(row.get("cell_number")) or "-",
            "Joined": _clean_text(row.get("date_of_joining")) or "-",
        },
    }


EMPLOYEE_VIEW = ReportView(
    name="employees",
    columns=(
        Column("image", "Photo", sortable=False, render=lambda value, row, index: value or None),
        Column("employee", "Employee ID"),
        Column("employee_name", "Name", render=_name_cell),
        Column("department", "Department"),
        Column("designation", "Designation"),
        Column("status", "Status", render=_employee_status_badge),
        Column("company_email", "Email"),
        Column("cell_number", "Phone"),
    ),
    searchable_fields=("employee_name", "employee", "department", "designation", "company_email"),
    filters=(
        FilterSpec("department", "Department"),
        FilterSpec("status", "Status"),
        FilterSpec("company", "Company"),
    ),
    default_sort="employee_name",
    empty_message="No employee records found",
    error_message="Failed to load employee data. Please try again.",
    render_card=_employee_card,
)


def _remaining_badge(value: Any, row: Mapping[str, Any], index: int) -> dict[str, str]:
    return _badge(stringify(value) or "0", _REMAINING_TONES.get(_clean_text(row.get("remaining_tier")), "muted"))


def _on_leave_badge(value: Any, row: Mapping[str, Any], index: int) -> dict[str, str]:
    return _badge("On Leave", "error") if value else _badge("Available", "success")


def _leave_card(row: Mapping[str, Any], index: int) -> dict[str, Any]:
    allocated = float(row.get("total_allocated") or 0)
    remaining = float(row.get("remaining") or 0)
    percent_left = round((remaining / allocated) * 100) if allocated > 0 else 0
    return {
        "title": _clean_text(row.get("employee_name")),
        "subtitle": _clean_text(row.get("department")),
        "initial": _initial(row.get("employee_name")),
        "badge": _on_leave_badge(row.get("on_leave"), row, index),
        "tag": _clean_text(row.get("leave_type")),
        "stats": {"Allocated": row.get("total_allocated"), "Used": row.get("used"), "Remaining": remaining},
        "progress": {
            "label": f"{percent_left}% left",
            "percent": max(5, min(100, percent_left)),
            "tone": _REMAINING_TONES.get(_clean_text(row.get("remaining_tier")), "muted"),
        },
    }


LEAVE_BALANCE_VIEW = ReportView(
    name="leave-balances",
    columns=(
        Column("employee_name", "Employee", render=_name_cell),
        Column("department", "Department"),
        Column("leave_type", "Leave Type"),
        Column("total_allocated", "Allocated"),
        Column("used", "Used"),
        Column("remaining", "Remaining", render=_remaining_badge),
        Column("on_leave", "Status", render=_on_leave_badge),
    ),
    searchable_fields=("employee_name", "department", "leave_type"),
    filters=(FilterSpec("department", "Department"),),
    default_sort="employee_name",
    empty_message="No leave balance records found",
    error_message="Failed to load leave balances.",
    render_card=_leave_card,
)


def _status_cell(value: Any, row: Mapping[str, Any], index: int) -> dict[str, str]:
    label = attendance_status(row)
    tone = {"Clocked In": "success", "Clocked Out": "muted"}.get(label, "error")
    return _badge(label, tone)


def _hours_cell(value: Any, row: Mapping[str, Any], index: int) -> dict[str, str]:
    hours = float(row.get("display_hours", value) or 0)
    return _badge(_format_hours(hours), _HOURS_TONES[hours_tier(hours)])


def _time_cell(value: Any, row: Mapping[str, Any], index: int) -> str:
    return _format_time(value)


def _work_hours_card(row: Mapping[str, Any], index: int) -> dict[str, Any]:
    hours = float(report_value(row, "total_hours") or 0)
    is_range = "days_worked" in row
    stats: dict[str, Any] = {
        "First In" if is_range else "Time In": _format_time(row.get("earliest_time_in" if is_range else "time_in")),
        "Last Out" if is_range else "Time Out": _format_time(row.get("latest_time_out" if is_range else "time_out")),
        "Total Hours": _format_hours(hours),
    }
    if is_range:
        stats["Days"] = row.get("days_worked")
        stats["Avg/Day"] = _format_hours(row.get("average_hours_per_day"))
    target = 8.0 * (row.get("days_worked") or 1)
    percent = round((hours / target) * 100) if target else 0
    return {
        "title": _clean_text(row.get("name")),
        "subtitle": " • ".join(
            part for part in (_clean_text(row.get("employee")), _clean_text(row.get("department"))) if part
        ),
        "initial": _initial(row.get("name")),
        "badge": _status_cell(None, row, index),
        "tag": _clean_text(row.get("designation")),
        "stats": stats,
        "progress": {
            "label": f"{percent}% of {target:g}h",
            "percent": max(5, min(100, percent)),
            "tone": _HOURS_TONES[hours_tier(hours / (row.get("days_worked") or 1))],
        },
    }


_WORK_HOURS_SEARCH = ("name", "employee", "department", "designation")
_WORK_HOURS_FILTERS = (FilterSpec("department", "Department"), FilterSpec("designation", "Designation"))

WORK_HOURS_VIEW = ReportView(
    name="work-hours",
    columns=(
        Column("employee", "Employee ID"),
        Column("name", "Name", render=_name_cell),
        Column("department", "Department"),
        Column("designation", "Designation"),
        Column("status", "Status", sortable=False, render=_status_cell),
        Column("time_in", "Time In", render=_time_cell),
        Column("time_out", "Time Out", render=_time_cell),
        Column("total_hours", "Total Hours", render=_hours_cell),
    ),
    searchable_fields=_WORK_HOURS_SEARCH,
    filters=_WORK_HOURS_FILTERS,
    default_sort="name",
    empty_message="No work hours data found",
    error_message="Failed to load work hours data.",
    render_card=_work_hours_card,
)

WORK_HOURS_RANGE_VIEW = ReportView(
    name="work-hours-range",
    columns=(
        Column("employee", "Employee ID"),
        Column("name", "Name", render=_name_cell),
        Column("days_worked", "Days"),
        Column("department", "Department"),
        Column("designation", "Designation"),
        Column("status", "Status", sortable=False, render=_status_cell),
        Column("earliest_time_in", "First In", render=_time_cell),
        Column("latest_time_out", "Last Out", render=_time_cell),
        Column("total_hours", "Total Hours", render=_hours_cell),
        Column(
            "average_hours_per_day",
            "Avg/Day",
            render=lambda value, row, index: _format_hours(value),
        ),
    ),
    searchable_fields=_WORK_HOURS_SEARCH,
    filters=_WORK_HOURS_FILTERS,
    default_sort="name",
    empty_message="No work hours data found",
    error_message="Failed to load work hours data.",
    render_card=_work_hours_card,
)


def build_grid_state(
    view: ReportView,
    *,
    mode: str = "table",
    query: str | None = None,
    filters: Mapping[str, Any] | None = None,
    sort_key: str | None = None,
    sort_dir: str | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> GridState:
    if mode not in VIEW_MODES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"view must be one of {', '.join(VIEW_MODES)}",
        )
    direction = sort_dir or "asc"
    if direction not in SORT_DIRECTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="dir must be asc or desc",
        )
    resolved_sort = sort_key or view.default_sort
    sortable = {column.key for column in view.columns if column.sortable}
    if resolved_sort not in sortable:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sort must be one of {', '.join(sorted(sortable))}",
        )

    options = TABLE_PAGE_SIZES if mode == "table" else CARD_PAGE_SIZES
    resolved_page_size = page_size or view.default_page_size(mode)
    if resolved_page_size not in options:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"page_size must be one of {', '.join(str(size) for size in options)}",
        )

    allowed = {spec.key for spec in view.filters}
    return GridState(
        query=query or "",
        filters={key: value for key, value in (filters or {}).items() if key in allowed},
        sort_key=resolved_sort,
        sort_dir=direction,
        page=max(1, page),
        page_size=resolved_page_size,
    )


def build_report_view(
    view: ReportView,
    records: Sequence[Mapping[str, Any]] | None,
    state: GridState,
    *,
    mode: str = "table",
    error: str = "",
    empty_message: str | None = None,
) -> Dict[str, Any]:
    message = empty_message or view.empty_message
    if error or records is None:
        return build_view(mode=mode, page=None, error=error or view.error_message, empty_message=message)

    _, page = run_grid(records, state, searchable_fields=view.searchable_fields, accessor=report_value)
    payload = build_view(
        mode=mode,
        page=page,
        columns=view.columns,
        render_card=view.render_card,
        state=state,
        controls=filter_controls(records, view.filters),
        empty_message=message,
        accessor=report_value,
    )
    payload["report"] = view.name
    return payload


def employee_directory_view(client: ErpClient, state: GridState, *, mode: str = "table") -> Dict[str, Any]:
    try:
        employees = fetch_employees(client)
    except ErpError as exc:
        logger.warning("Employee fetch failed: %s", exc)
        return build_report_view(EMPLOYEE_VIEW, None, state, mode=mode)
    return build_report_view(EMPLOYEE_VIEW, employees, state, mode=mode)


def leave_balances_view(client: ErpClient, state: GridState, *, mode: str = "table") -> Dict[str, Any]:
    try:
        balances = fetch_leave_balances(client)
    except ErpError as exc:
        logger.warning("Leave dashboard fetch failed: %s", exc)
        return build_report_view(LEAVE_BALANCE_VIEW, None, state, mode=mode)
    return build_report_view(LEAVE_BALANCE_VIEW, balances, state, mode=mode)


def work_hours_view_for(start_date: str, end_date: str) -> ReportView:
    return WORK_HOURS_VIEW if start_date == end_date else WORK_HOURS_RANGE_VIEW


def work_hours_view(
    client: ErpClient,
    state: GridState,
    *,
    start_date: str,
    end_date: str,
    mode: str = "table",
    policy: str = "backend",
) -> Dict[str, Any]:
    view = work_hours_view_for(start_date, end_date)
    period = start_date if start_date == end_date else f"{start_date} to {end_date}"
    try:
        records = fetch_work_hours(client, start_date, end_date, policy)
    except ErpError as exc:
        logger.warning("Work hours fetch failed for %s: %s", period, exc)
        return build_report_view(view, None, state, mode=mode)

    payload = build_report_view(
        view,
        records,
        state,
        mode=mode,
        empty_message=f"No work hours data found for {period}",
    )
    payload["period"] = {"start_date": start_date, "end_date": end_date, "is_range": start_date != end_date}
    return payload


def filtered_work_hours(
    client: ErpClient,
    state: GridState,
    *,
    start_date: str,
    end_date: str,
    policy: str = "backend",
) -> List[Dict[str, Any]]:
    view = work_hours_view_for(start_date, end_date)
    records = fetch_work_hours(client, start_date, end_date, policy)
    return [
        dict(record)
        for record in apply_query(
            records,
            state.query,
            view.searchable_fields,
            state.filters,
            state.sort_key,
            state.sort_dir,
            accessor=report_value,
        )
    ]


def work_hours_summary(records: Sequence[Mapping[str, Any]], settings: ErpSettings) -> Dict[str, Any]:
    return summarize_work_hours(records, settings.open_shift_policy)


def employee_attendance_records(
    client: ErpClient,
    employee: str,
    *,
    start_date: str,
    end_date: str,
    policy: str = "backend",
) -> List[Dict[str, Any]]:
    daily = with_display_hours(fetch_daily_work_hours(client, start_date, end_date), policy)
    records = [record for record in daily if record.get("employee") == employee]
    return sorted(records, key=lambda item: _clean_text(item.get("date")))


def fetch_dashboard_summary(client: ErpClient, settings: ErpSettings, date_value: str | None = None) -> Dict[str, Any]:
    day, _ = resolve_period(settings, date_value=date_value)
    errors: list[str] = []

    try:
        employees = fetch_employees(client)
    except ErpError as exc:
        logger.warning("Dashboard employee fetch failed: %s", exc)
        employees = []
        errors.append(EMPLOYEE_VIEW.error_message)

    try:
        balances = fetch_leave_balances(client)
    except ErpError as exc:
        logger.warning("Dashboard leave fetch failed: %s", exc)
        balances = []
        errors.append(LEAVE_BALANCE_VIEW.error_message)

    try:
        work_hours = fetch_daily_work_hours(client, day, day)
    except ErpError as exc:
        logger.warning("Dashboard work hours fetch failed: %s", exc)
        work_hours = []
        errors.append(WORK_HOURS_VIEW.error_message)

    hours_view = [
        dict(item, total_hours=item["display_hours"])
        for item in with_display_hours(work_hours, settings.open_shift_policy)
    ]

    return {
        "date": day,
        "metrics": compute_dashboard_metrics(employees, balances, hours_view),
        "departments": department_analysis(employees, balances, hours_view),
        "leave_types": leave_type_breakdown(balances),
        "errors": errors,
        "generatedAt": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    }
