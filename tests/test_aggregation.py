import pytest

from hr_dashboard.aggregation import (
    aggregate_work_hours,
    attendance_status,
    displayed_hours,
    hours_tier,
    normalize_leave_balance,
    normalize_work_hour,
    on_leave_keys,
    remaining_leave,
    remaining_tier,
    summarize_work_hours,
    utilization_tier,
    with_display_hours,
)
from hr_dashboard.metrics import compute_dashboard_metrics, department_analysis, leave_type_breakdown


def _day(employee, date, hours, time_in="09:00:00", time_out="17:00:00", **extra):
    row = {
        "employee": employee,
        "name": extra.pop("name", employee),
        "department": extra.pop("department", "Engineering"),
        "designation": "Developer",
        "date": date,
        "time_in": time_in,
        "time_out": time_out,
        "total_hours": hours,
    }
    row.update(extra)
    return row


def test_aggregate_totals_days_and_average():
    rows = [
        _day("E1", "2025-01-06", 4, "09:00:00", "13:00:00"),
        _day("E1", "2025-01-07", 3.5, "08:45:00", "12:15:00"),
        _day("E1", "2025-01-08", 8, "09:30:00", "17:30:00"),
    ]
    (rollup,) = aggregate_work_hours(rows)
    assert rollup["total_hours"] == pytest.approx(15.5)
    assert rollup["days_worked"] == 3
    assert rollup["average_hours_per_day"] == pytest.approx(5.1667, abs=1e-3)
    assert rollup["earliest_time_in"] == "08:45:00"
    assert rollup["latest_time_out"] == "17:30:00"


def test_aggregate_groups_by_employee_regardless_of_order():
    rows = [
        _day("E2", "2025-01-07", 6),
        _day("E1", "2025-01-06", 8),
        _day("E2", "2025-01-06", 2),
    ]
    forward = aggregate_work_hours(rows)
    backward = aggregate_work_hours(list(reversed(rows)))
    assert [item["employee"] for item in forward] == ["E1", "E2"]
    assert forward == backward
    assert forward[1]["days_worked"] == 2
    assert forward[1]["total_hours"] == pytest.approx(8)


def test_aggregate_keeps_missing_clock_times_empty():
    (rollup,) = aggregate_work_hours([_day("E1", "2025-01-06", 0, time_in="", time_out="")])
    assert rollup["earliest_time_in"] is None
    assert rollup["latest_time_out"] is None
    assert attendance_status(rollup) == "No Check-in"


def test_aggregate_empty_input():
    assert aggregate_work_hours([]) == []


def test_normalize_work_hour_derives_clock_state():
    open_shift = normalize_work_hour(_day("E1", "2025-01-06", "2.5", time_out=""))
    assert open_shift["is_currently_clocked_in"] is True
    assert open_shift["total_hours"] == pytest.approx(2.5)
    assert attendance_status(open_shift) == "Clocked In"

    closed = normalize_work_hour(_day("E1", "2025-01-06", None))
    assert closed["is_currently_clocked_in"] is False
    assert closed["total_hours"] == 0.0
    assert attendance_status(closed) == "Clocked Out"


def test_displayed_hours_policies():
    record = {"total_hours": 2.5, "is_currently_clocked_in": True}
    assert displayed_hours(record) == pytest.approx(2.5)
    assert displayed_hours(record, "zero_when_clocked_in") == 0.0
    with pytest.raises(ValueError):
        displayed_hours(record, "guess")


@pytest.mark.parametrize("hours, tier", [(8, "full"), (7.99, "partial"), (6, "partial"), (5.9, "short"), (0, "short")])
def test_hours_tier(hours, tier):
    assert hours_tier(hours) == tier


def test_summarize_work_hours():
    records = [
        {"employee": "E1", "total_hours": 8, "is_currently_clocked_in": False},
        {"employee": "E2", "total_hours": 2, "is_currently_clocked_in": True},
    ]
    summary = summarize_work_hours(records)
    assert summary == {
        "total_employees": 2,
        "total_hours": 10,
        "currently_clocked": 1,
        "avg_hours_per_employee": 5,
    }
    assert summarize_work_hours([])["avg_hours_per_employee"] == 0.0


def test_remaining_leave_never_negative():
    assert remaining_leave(21, 25) == 0
    assert remaining_leave(20, 5) == 15


def test_leave_tiers():
    assert remaining_tier(used=5, total_allocated=20) == "high"
    assert remaining_tier(used=10, total_allocated=20) == "medium"
    assert remaining_tier(used=25, total_allocated=21) == "low"
    assert remaining_tier(used=0, total_allocated=0) == "low"
    assert utilization_tier(used=15, total_allocated=20) == "high"
    assert utilization_tier(used=10, total_allocated=20) == "moderate"
    assert utilization_tier(used=1, total_allocated=20) == "low"


def test_on_leave_join_prefers_employee_id():
    keys = on_leave_keys([{"employee": "E2", "employee_name": "Sam"}, {"employee_name": "Robin"}])
    by_id = normalize_leave_balance({"employee": "E2", "employee_name": "Someone Else"}, keys)
    same_name_other_id = normalize_leave_balance({"employee": "E9", "employee_name": "Sam"}, keys)
    by_name = normalize_leave_balance({"employee_name": "Robin"}, keys)
    assert by_id["on_leave"] is True
    assert same_name_other_id["on_leave"] is False
    assert by_name["on_leave"] is True


def test_normalize_leave_balance_clamps_remaining():
    record = normalize_leave_balance({"employee": "E1", "total_allocated": "21", "used": 25}, set())
    assert record["remaining"] == 0
    assert record["remaining_tier"] == "low"
    assert record["utilization_tier"] == "high"


def test_dashboard_metrics():
    employees = [
        {"employee": "E1", "status": "Active", "department": "Engineering"},
        {"employee": "E2", "status": "Active", "department": "Sales"},
        {"employee": "E3", "status": "Left", "department": "Engineering"},
    ]
    balances = [
        {"employee_name": "A", "department": "Engineering", "leave_type": "Annual", "total_allocated": 20, "used": 5, "remaining": 15, "on_leave": False},
        {"employee_name": "B", "department": "Sales", "leave_type": "Annual", "total_allocated": 20, "used": 15, "remaining": 5, "on_leave": True},
        {"employee_name": "B", "department": "Sales", "leave_type": "Sick", "total_allocated": 10, "used": 0, "remaining": 10, "on_leave": True},
    ]
    work_hours = [
        {"department": "Engineering", "time_in": "09:00", "total_hours": 8},
        {"department": "Sales", "time_in": "10:00", "total_hours": 4},
    ]

    metrics = compute_dashboard_metrics(employees, balances, work_hours)
    assert metrics["total_employees"] == 3
    assert metrics["active_employees"] == 2
    assert metrics["unique_on_leave"] == 1
    assert metrics["present_today"] == 2
    assert metrics["full_day_workers"] == 1
    assert metrics["part_time_workers"] == 1
    assert metrics["leave_utilization"] == pytest.approx(40.0)

    departments = department_analysis(employees, balances, work_hours)
    assert departments[0] == {"department": "Engineering", "count": 2, "percentage": 66.7, "on_leave": 0, "present": 1}

    types = leave_type_breakdown(balances)
    assert [item["type"] for item in types] == ["Annual", "Sick"]
    assert types[0]["employee_count"] == 2
    assert types[0]["utilization"] == pytest.approx(50.0)


def test_dashboard_metrics_without_data():
    metrics = compute_dashboard_metrics([], [], [])
    assert metrics["attendance_rate"] == 0.0
    assert metrics["avg_hours_today"] == 0.0


def test_open_shift_policy_applies_per_day_before_rollup():
    rows = with_display_hours(
        [
            _day("E1", "2025-01-06", 8, is_currently_clocked_in=False),
            _day("E1", "2025-01-07", 8, is_currently_clocked_in=False),
            _day("E1", "2025-01-08", 2, time_out="", is_currently_clocked_in=True),
        ],
        "zero_when_clocked_in",
    )
    (rollup,) = aggregate_work_hours(rows)
    assert rollup["total_hours"] == pytest.approx(18)
    assert rollup["display_hours"] == pytest.approx(16)
    assert rollup["average_hours_per_day"] == pytest.approx(16 / 3)
    assert rollup["is_currently_clocked_in"] is True

    summary = summarize_work_hours([rollup], "zero_when_clocked_in")
    assert summary["total_hours"] == pytest.approx(16)
    assert summary["currently_clocked"] == 1


def test_rollup_without_policy_shows_raw_hours():
    (rollup,) = aggregate_work_hours([_day("E1", "2025-01-06", 2, time_out="", is_currently_clocked_in=True)])
    assert rollup["display_hours"] == pytest.approx(2)
    assert summarize_work_hours([rollup], "zero_when_clocked_in")["total_hours"] == pytest.approx(2)
