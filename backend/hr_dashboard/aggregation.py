from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterable, Mapping, Sequence

from .config import OPEN_SHIFT_POLICIES

FULL_DAY_HOURS = 8.0
PARTIAL_DAY_HOURS = 6.0


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def is_clocked_in(time_in: Any, time_out: Any) -> bool:
    clock_in = _clean_text(time_in)
    clock_out = _clean_text(time_out)
    if not clock_in:
        return False
    return not clock_out or clock_out == clock_in


def normalize_work_hour(row: Mapping[str, Any]) -> dict[str, Any]:
    record = dict(row)
    record["employee"] = _clean_text(row.get("employee"))
    record["name"] = _clean_text(row.get("name")) or record["employee"]
    record["department"] = _clean_text(row.get("department"))
    record["designation"] = _clean_text(row.get("designation"))
    record["date"] = _clean_text(row.get("date")) or None
    record["time_in"] = _clean_text(row.get("time_in"))
    record["time_out"] = _clean_text(row.get("time_out"))
    record["total_hours"] = max(0.0, _to_float(row.get("total_hours")))
    flag = row.get("is_currently_clocked_in")
    if isinstance(flag, bool):
        record["is_currently_clocked_in"] = flag
    else:
        record["is_currently_clocked_in"] = is_clocked_in(record["time_in"], record["time_out"])
    return record


def displayed_hours(record: Mapping[str, Any], policy: str = "backend") -> float:
    if policy not in OPEN_SHIFT_POLICIES:
        raise ValueError(f"unknown open shift policy {policy!r}")
    if policy == "zero_when_clocked_in" and record.get("is_currently_clocked_in"):
        return 0.0
    return _to_float(record.get("total_hours"))


def with_display_hours(records: Iterable[Mapping[str, Any]], policy: str = "backend") -> list[dict[str, Any]]:
    return [dict(record, display_hours=displayed_hours(record, policy)) for record in records]


def shown_hours(record: Mapping[str, Any], policy: str = "backend") -> float:
    if "display_hours" in record:
        return _to_float(record.get("display_hours"))
    return displayed_hours(record, policy)


def hours_tier(hours: float) -> str:
    if hours >= FULL_DAY_HOURS:
        return "full"
    if hours >= PARTIAL_DAY_HOURS:
        return "partial"
    return "short"


def attendance_status(record: Mapping[str, Any]) -> str:
    if record.get("is_currently_clocked_in"):
        return "Clocked In"
    if _clean_text(record.get("time_out")) or _clean_text(record.get("latest_time_out")):
        return "Clocked Out"
    return "No Check-in"


def aggregate_work_hours(daily_records: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Roll per-day attendance up to one record per employee.

    Groups by employee id, so the result does not depend on input order.
    Employees with no clock times keep empty ``earliest_time_in`` and
    ``latest_time_out`` values. ``display_hours`` sums the per-day display
    values when present, so an open shift only affects its own day.
    """
    groups: dict[str, list[Mapping[str, Any]]] = defaultdict(list)
    for row in daily_records:
        groups[_clean_text(row.get("employee"))].append(row)

    rollups: list[dict[str, Any]] = []
    for employee in sorted(groups):
        rows = groups[employee]
        ordered = sorted(rows, key=lambda item: _clean_text(item.get("date")))
        first = ordered[0]

        time_ins = [_clean_text(item.get("time_in")) for item in rows if _clean_text(item.get("time_in"))]
        time_outs = [_clean_text(item.get("time_out")) for item in rows if _clean_text(item.get("time_out"))]
        total_hours = sum(_to_float(item.get("total_hours")) for item in rows)
        display_hours = sum(shown_hours(item) for item in rows)
        days_worked = len(rows)

        rollups.append(
            {
                "employee": employee,
                "name": _clean_text(first.get("name")) or employee,
                "department": _clean_text(first.get("department")),
                "designation": _clean_text(first.get("designation")),
                "days_worked": days_worked,
                "earliest_time_in": min(time_ins) if time_ins else None,
                "latest_time_out": max(time_outs) if time_outs else None,
                "total_hours": total_hours,
                "display_hours": display_hours,
                "average_hours_per_day": display_hours / days_worked,
                "is_currently_clocked_in": any(bool(item.get("is_currently_clocked_in")) for item in rows),
            }
        )
    return rollups


def summarize_work_hours(records: Sequence[Mapping[str, Any]], policy: str = "backend") -> dict[str, Any]:
    employees = {_clean_text(item.get("employee")) for item in records}
    total_hours = sum(shown_hours(item, policy) for item in records)
    currently_clocked = sum(1 for item in records if item.get("is_currently_clocked_in"))
    return {
        "total_employees": len(employees),
        "total_hours": total_hours,
        "currently_clocked": currently_clocked,
        "avg_hours_per_employee": total_hours / len(employees) if employees else 0.0,
    }


def remaining_leave(total_allocated: float, used: float) -> float:
    return max(0.0, total_allocated - used)


def _percentage(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return (part / whole) * 100.0


def remaining_tier(used: float, total_allocated: float) -> str:
    left = _percentage(remaining_leave(total_allocated, used), total_allocated)
    if left >= 70:
        return "high"
    if left >= 40:
        return "medium"
    return "low"


def utilization_tier(used: float, total_allocated: float) -> str:
    utilization = _percentage(used, total_allocated)
    if utilization >= 70:
        return "high"
    if utilization >= 40:
        return "moderate"
    return "low"


def on_leave_keys(on_leave_rows: Iterable[Mapping[str, Any]]) -> set[str]:
    # ERP rows carry the employee id; the name is only a fallback for rows without one.
    keys: set[str] = set()
    for row in on_leave_rows:
        employee = _clean_text(row.get("employee"))
        if employee:
            keys.add(f"id:{employee}")
            continue
        name = _clean_text(row.get("employee_name"))
        if name:
            keys.add(f"name:{name}")
    return keys


def _leave_join_key(row: Mapping[str, Any]) -> str:
    employee = _clean_text(row.get("employee"))
    if employee:
        return f"id:{employee}"
    return f"name:{_clean_text(row.get('employee_name'))}"


def normalize_leave_balance(row: Mapping[str, Any], on_leave: set[str]) -> dict[str, Any]:
    total_allocated = _to_float(row.get("total_allocated"))
    used = _to_float(row.get("used"))
    record = dict(row)
    record["employee"] = _clean_text(row.get("employee")) or None
    record["employee_name"] = _clean_text(row.get("employee_name"))
    record["department"] = _clean_text(row.get("department"))
    record["leave_type"] = _clean_text(row.get("leave_type"))
    record["total_allocated"] = total_allocated
    record["used"] = used
    record["remaining"] = remaining_leave(total_allocated, used)
    record["on_leave"] = _leave_join_key(row) in on_leave
    record["remaining_tier"] = remaining_tier(used, total_allocated)
    record["utilization_tier"] = utilization_tier(used, total_allocated)
    return record
