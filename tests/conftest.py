import json
import os

import httpx
import pytest

# Set env before importing app components
os.environ.setdefault("ERP_API_URL", "http://erp.test")
os.environ.setdefault("ERP_API_KEY", "key")
os.environ.setdefault("ERP_API_SECRET", "secret")

from fastapi.testclient import TestClient

from hr_dashboard.config import ErpSettings
from hr_dashboard.erp_client import ErpClient
from hr_dashboard.main import app, get_client, get_session_client, get_settings

TEST_SETTINGS = ErpSettings(api_url="http://erp.test", api_key="key", api_secret="secret")

EMPLOYEES = [
    {
        "employee": "HR-EMP-001",
        "employee_name": "Alice Smith",
        "department": "Engineering",
        "designation": "Developer",
        "status": "Active",
        "company": "BizSmart",
        "company_email": "alice@bizsmart.test",
    },
    {
        "employee": "HR-EMP-002",
        "employee_name": "bob jones",
        "department": "Sales",
        "designation": "Manager",
        "status": "Active",
        "company": "BizSmart",
        "company_email": "bob@bizsmart.test",
    },
    {
        "employee": "HR-EMP-003",
        "employee_name": "Carol White",
        "department": "Engineering",
        "designation": "QA",
        "status": "Left",
        "company": "BizSmart",
    },
]

LEAVE_DASHBOARD = {
    "leave_balances": [
        {
            "employee": "HR-EMP-001",
            "employee_name": "Alice Smith",
            "department": "Engineering",
            "leave_type": "Annual Leave",
            "total_allocated": 21,
            "used": 25,
        },
        {
            "employee": "HR-EMP-002",
            "employee_name": "bob jones",
            "department": "Sales",
            "leave_type": "Annual Leave",
            "total_allocated": 20,
            "used": 5,
        },
    ],
    "on_leave": [{"employee": "HR-EMP-002", "employee_name": "bob jones"}],
}

WORK_HOURS = [
    {
        "employee": "HR-EMP-001",
        "name": "Alice Smith",
        "department": "Engineering",
        "designation": "Developer",
        "date": "2025-01-06",
        "time_in": "09:00:00",
        "time_out": "13:00:00",
        "total_hours": 4,
        "is_currently_clocked_in": False,
    },
    {
        "employee": "HR-EMP-001",
        "name": "Alice Smith",
        "department": "Engineering",
        "designation": "Developer",
        "date": "2025-01-07",
        "time_in": "09:00:00",
        "time_out": "12:30:00",
        "total_hours": 3.5,
        "is_currently_clocked_in": False,
    },
    {
        "employee": "HR-EMP-001",
        "name": "Alice Smith",
        "department": "Engineering",
        "designation": "Developer",
        "date": "2025-01-08",
        "time_in": "08:30:00",
        "time_out": "16:30:00",
        "total_hours": 8,
        "is_currently_clocked_in": False,
    },
    {
        "employee": "HR-EMP-002",
        "name": "bob jones",
        "department": "Sales",
        "designation": "Manager",
        "date": "2025-01-06",
        "time_in": "10:00:00",
        "time_out": "",
        "total_hours": 2.5,
        "is_currently_clocked_in": True,
    },
]


class FakeErp:
    """In-memory stand-in for the ERP method endpoints."""

    def __init__(self):
        self.employees = [dict(row) for row in EMPLOYEES]
        self.leave_dashboard = json.loads(json.dumps(LEAVE_DASHBOARD))
        self.work_hours = [dict(row) for row in WORK_HOURS]
        self.failing = set()
        self.unreachable = False
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        method = request.url.path.rsplit("/", 1)[-1]
        if method in self.failing:
            return httpx.Response(500, json={"exc_type": "InternalServerError"})

        if method == "login":
            body = json.loads(request.content or b"{}")
            if body == {"usr": "alice@bizsmart.test", "pwd": "correct-horse"}:
                return httpx.Response(
                    200,
                    json={"message": "Logged In", "home_page": "/app", "full_name": "Alice Smith"},
                    headers={"set-cookie": "sid=abc123; Path=/; HttpOnly"},
                )
            return httpx.Response(
                401,
                json={"message": "Invalid login credentials", "exc_type": "AuthenticationError"},
            )
        if method == "logout":
            return httpx.Response(200, json={})

        if request.headers.get("Authorization") != TEST_SETTINGS.token_header:
            return httpx.Response(403, json={"exc_type": "PermissionError"})

        if method.endswith("get_all_employees"):
            return httpx.Response(200, json={"message": self.employees})
        if method.endswith("get_leave_dashboard"):
            return httpx.Response(200, json={"message": self.leave_dashboard})
        if method.endswith("get_employee_work_hours"):
            params = request.url.params
            start = params.get("date_str") or params.get("start_date")
            end = params.get("date_str") or params.get("end_date")
            rows = [row for row in self.work_hours if start <= row["date"] <= end]
            return httpx.Response(200, json={"message": rows})
        return httpx.Response(404, json={"exc_type": "DoesNotExistError"})


@pytest.fixture(scope="function")
def erp():
    return FakeErp()


@pytest.fixture(scope="function")
def client(erp):
    transport = httpx.MockTransport(erp.handler)

    def _override_client():
        with ErpClient(TEST_SETTINGS, transport=transport) as erp_client:
            yield erp_client

    app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    app.dependency_overrides[get_client] = _override_client
    app.dependency_overrides[get_session_client] = _override_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def erp_client(erp):
    with ErpClient(TEST_SETTINGS, transport=httpx.MockTransport(erp.handler)) as erp_client:
        yield erp_client
