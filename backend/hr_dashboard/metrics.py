from __future__ import annotations

from collections import Counter
from typing import Any, Mapping, Sequence

from .aggregation import FULL_DAY_HOURS

TOP_DEPARTMENTS = 6


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _rate(part: float, whole: float) -> float:
    return (part / whole) * 100.0 if whole > 0 else 0.0


def compute_dashboard_metrics(
    employees: Sequence[Mapping[str, Any]],
    leave_balances: Sequence[Mapping[str, Any]],
    work_hours: Sequence[Mapping[str, Any]],
) -> dict[str, Any]:
    total_employees = len(employees)
    active_employees = sum(1 for emp in employees if emp.get("status") == "Active")
    on_leave_names = {_clean_text(lb.get("employee_name")) for lb in leave_balances if lb.get("on_leave")}

    total_hours = sum(float(wh.get("total_hours") or 0) for wh in work_hours)
    present = sum(1 for wh in work_hours if _clean_text(wh.get("time_in")))
    full_day = sum(1 for wh in work_hours if float(wh.get("total_hours") or 0) >= FULL_DAY_HOURS)
    part_time = sum(1 for wh in work_hours if 0 < float(wh.get("total_hours") or 0) < FULL_DAY_HOURS)

    total_allocated = sum(float(lb.get("total_allocated") or 0) for lb in leave_balances)
    total_used = sum(float(lb.get("used") or 0) for lb in leave_balances)

    return {
        "total_employees": total_employees,
        "active_employees": active_employees,
        "unique_on_leave": len(on_leave_names),
        "total_hours_today": total_hours,
        "avg_hours_today": total_hours / len(work_hours) if work_hours else 0.0,
        "present_today": present,
        "full_day_workers": full_day,
        "part_time_workers": part_time,
        "total_leave_allocated": total_allocated,
        "total_leave_used": total_used,
        "leave_utilization": _rate(total_used, total_allocated),
        "attendance_rate": _rate(present, total_employees),
        "full_day_rate": _rate(full_day, present),
    }


def department_analysis(
    employees: Sequence[Mapping[str, Any]],
    leave_balances: Sequence[Mapping[str, Any]],
    work_hours: Sequence[Mapping[str, Any]],
    *,
    limit: int = TOP_DEPARTMENTS,
) -> list[dict[str, Any]]:
    counts = Counter(_clean_text(emp.get("department")) for emp in employees)
    total = len(employees)

    rows = [
        {
            "department": department,
            "count": count,
            "percentage": round(_rate(count, total), 1),
            "on_leave": sum(
                1
                for lb in leave_balances
                if _clean_text(lb.get("department")) == department and lb.get("on_leave")
            ),
            "present": sum(
                1
                for wh in work_hours
                if _clean_text(wh.get("department")) == department and _clean_text(wh.get("time_in"))
            ),
        }
        for department, count in counts.items()
    ]
    rows.sort(key=lambda item: (-item["count"], item["department"]))
    return rows[:limit]


def leave_type_breakdown(leave_balances: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    breakdown: dict[str, dict[str, Any]] = {}
    for lb in leave_balances:
        leave_type = _clean_text(lb.get("leave_type"))
        bucket = breakdown.setdefault(
            leave_type,
            {"allocated": 0.0, "used": 0.0, "remaining": 0.0, "employees": set()},
        )
        bucket["allocated"] += float(lb.get("total_allocated") or 0)
        bucket["used"] += float(lb.get("used") or 0)
        bucket["remaining"] += float(lb.get("remaining") or 0)
        bucket["employees"].add(_clean_text(lb.get("employee_name")))

    rows = [
        {
            "type": leave_type,
            "allocated": data["allocated"],
            "used": data["used"],
            "remaining": data["remaining"],
            "employee_count": len(data["employees"]),
            "utilization": _rate(data["used"], data["allocated"]),
        }
        for leave_type, data in breakdown.items()
    ]
    rows.sort(key=lambda item: (-item["allocated"], item["type"]))
    return rows
