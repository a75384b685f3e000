from fastapi import status

from hr_dashboard.erp_client import EMPLOYEES_METHOD, LEAVE_DASHBOARD_METHOD, WORK_HOURS_METHOD


def test_employee_report_default_table(client):
    """Test the employee directory renders a table sorted by name."""
    response = client.get("/api/reports/employees")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["state"] == "ready"
    assert data["report"] == "employees"
    assert [row["employee"] for row in data["rows"]] == ["HR-EMP-001", "HR-EMP-002", "HR-EMP-003"]
    assert data["pagination"]["page_size"] == 25
    assert data["pagination"]["showing"] == "Showing 1-3 of 3 records"

    departments = next(control for control in data["filters"] if control["key"] == "department")
    assert [option["value"] for option in departments["options"]] == ["all", "Engineering", "Sales"]


def test_employee_report_department_filter(client):
    response = client.get("/api/reports/employees", params={"department": "Engineering"})
    data = response.json()
    assert data["pagination"]["total_count"] == 2
    assert {row["employee"] for row in data["rows"]} == {"HR-EMP-001", "HR-EMP-003"}
    assert data["query"]["filters"]["department"] == "Engineering"


def test_employee_report_all_sentinel_is_inactive(client):
    response = client.get("/api/reports/employees", params={"department": "all", "status": "Active"})
    data = response.json()
    assert data["pagination"]["total_count"] == 2


def test_employee_report_search_without_matches_is_empty(client):
    response = client.get("/api/reports/employees", params={"q": "zzz"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["state"] == "empty"
    assert data["message"] == "No employee records found"
    assert data["pagination"]["total_pages"] == 1


def test_employee_report_cards_and_sort(client):
    response = client.get("/api/reports/employees", params={"view": "cards", "sort": "employee_name", "dir": "desc"})
    data = response.json()
    assert data["mode"] == "cards"
    assert data["pagination"]["page_size"] == 8
    assert [card["title"] for card in data["cards"]] == ["Carol White", "bob jones", "Alice Smith"]


def test_employee_report_rejects_bad_grid_params(client):
    assert client.get("/api/reports/employees", params={"sort": "salary"}).status_code == status.HTTP_400_BAD_REQUEST
    assert client.get("/api/reports/employees", params={"dir": "up"}).status_code == status.HTTP_400_BAD_REQUEST
    assert client.get("/api/reports/employees", params={"page_size": 7}).status_code == status.HTTP_400_BAD_REQUEST
    assert client.get("/api/reports/employees", params={"view": "list"}).status_code == status.HTTP_400_BAD_REQUEST


def test_employee_report_fetch_error(client, erp):
    erp.failing.add(EMPLOYEES_METHOD)
    response = client.get("/api/reports/employees")
    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json() == {
        "state": "error",
        "mode": "table",
        "error": "Failed to load employee data. Please try again.",
    }


def test_leave_balances_report(client):
    response = client.get("/api/reports/leave-balances")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    rows = {row["employee_name"]["text"]: row for row in data["rows"]}
    assert rows["Alice Smith"]["remaining"]["text"] == "0"
    assert rows["Alice Smith"]["on_leave"] == {"text": "Available", "tone": "success"}
    assert rows["bob jones"]["on_leave"] == {"text": "On Leave", "tone": "error"}


def test_leave_balances_fetch_error(client, erp):
    erp.failing.add(LEAVE_DASHBOARD_METHOD)
    response = client.get("/api/reports/leave-balances")
    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["error"] == "Failed to load leave balances."


def test_work_hours_single_day(client):
    response = client.get("/api/reports/work-hours", params={"date": "2025-01-06"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["report"] == "work-hours"
    assert data["period"] == {"start_date": "2025-01-06", "end_date": "2025-01-06", "is_range": False}
    statuses = {row["employee"]: row["status"]["text"] for row in data["rows"]}
    assert statuses == {"HR-EMP-001": "Clocked Out", "HR-EMP-002": "Clocked In"}


def test_work_hours_range_aggregates_per_employee(client):
    response = client.get(
        "/api/reports/work-hours",
        params={"start_date": "2025-01-06", "end_date": "2025-01-08"},
    )
    data = response.json()
    assert data["report"] == "work-hours-range"
    alice = next(row for row in data["rows"] if row["employee"] == "HR-EMP-001")
    assert alice["days_worked"] == "3"
    assert alice["total_hours"]["text"] == "15.50h"
    assert alice["average_hours_per_day"] == "5.17h"
    assert alice["earliest_time_in"] == "08:30:00"
    assert alice["latest_time_out"] == "16:30:00"


def test_work_hours_date_validation(client):
    backwards = client.get("/api/reports/work-hours", params={"start_date": "2025-01-08", "end_date": "2025-01-06"})
    assert backwards.status_code == status.HTTP_400_BAD_REQUEST
    assert backwards.json()["detail"] == "Start date cannot be after end date"

    too_long = client.get("/api/reports/work-hours", params={"start_date": "2025-01-01", "end_date": "2025-02-15"})
    assert too_long.status_code == status.HTTP_400_BAD_REQUEST

    malformed = client.get("/api/reports/work-hours", params={"date": "06/01/2025"})
    assert malformed.status_code == status.HTTP_400_BAD_REQUEST


def test_work_hours_empty_day(client):
    response = client.get("/api/reports/work-hours", params={"date": "2025-02-01"})
    data = response.json()
    assert data["state"] == "empty"
    assert data["message"] == "No work hours data found for 2025-02-01"


def test_work_hours_fetch_error(client, erp):
    erp.failing.add(WORK_HOURS_METHOD)
    response = client.get("/api/reports/work-hours", params={"date": "2025-01-06"})
    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["error"] == "Failed to load work hours data."


def test_dashboard_summary(client):
    response = client.get("/api/dashboard", params={"date": "2025-01-06"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["date"] == "2025-01-06"
    assert data["errors"] == []
    assert data["metrics"]["total_employees"] == 3
    assert data["metrics"]["present_today"] == 2
    assert data["metrics"]["unique_on_leave"] == 1
    assert data["departments"][0]["department"] == "Engineering"


def test_dashboard_collects_partial_failures(client, erp):
    erp.failing.add(LEAVE_DASHBOARD_METHOD)
    data = client.get("/api/dashboard", params={"date": "2025-01-06"}).json()
    assert data["errors"] == ["Failed to load leave balances."]
    assert data["metrics"]["total_employees"] == 3
    assert data["leave_types"] == []
