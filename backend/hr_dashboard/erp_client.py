from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

import httpx

from .config import ErpSettings, get_erp_settings, log_erp_target_once, validate_erp_settings

logger = logging.getLogger(__name__)

LOGIN_METHOD = "login"
LOGOUT_METHOD = "logout"
EMPLOYEES_METHOD = "hrms.api.employee.get_all_employees"
LEAVE_DASHBOARD_METHOD = "hrms.api.leave_dashboard.get_leave_dashboard"
WORK_HOURS_METHOD = "hrms.api.employee_checkin.get_employee_work_hours"

LOGGED_IN_MESSAGE = "Logged In"
SESSION_COOKIE = "sid"


class ErpError(Exception):
    pass


class ErpRequestError(ErpError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _method_path(method: str) -> str:
    return f"/api/method/{method}"


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def unwrap_message(payload: Any) -> Any:
    if not isinstance(payload, Mapping):
        return None
    return payload.get("message")


class ErpClient:
    def __init__(self, settings: ErpSettings, *, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self._client = httpx.Client(
            base_url=settings.api_url,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ErpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _send(
        self,
        verb: str,
        method: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Mapping[str, Any] | None = None,
        authenticated: bool = True,
        extra_headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        headers = {"Authorization": self.settings.token_header} if authenticated else {}
        headers.update(extra_headers or {})
        try:
            return self._client.request(
                verb,
                _method_path(method),
                params=dict(params) if params else None,
                json=dict(json_body) if json_body is not None else None,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise ErpRequestError(f"{method}: {exc}") from exc

    def get_message(self, method: str, params: Mapping[str, Any] | None = None) -> Any:
        response = self._send("GET", method, params=params)
        if response.is_error:
            raise ErpRequestError(
                f"{method}: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return unwrap_message(_decode_json(response))

    def login(self, usr: str, pwd: str) -> tuple[bool, dict[str, Any], str | None]:
        response = self._send(
            "POST",
            LOGIN_METHOD,
            json_body={"usr": usr, "pwd": pwd},
            authenticated=False,
        )
        payload = _decode_json(response)
        data = dict(payload) if isinstance(payload, Mapping) else {}
        return data.get("message") == LOGGED_IN_MESSAGE, data, response.cookies.get(SESSION_COOKIE)

    def logout(self, sid: str | None = None) -> None:
        headers = {"Cookie": f"{SESSION_COOKIE}={sid}"} if sid else None
        response = self._send("POST", LOGOUT_METHOD, authenticated=False, extra_headers=headers)
        if response.is_error:
            raise ErpRequestError(
                f"{LOGOUT_METHOD}: HTTP {response.status_code}",
                status_code=response.status_code,
            )

    def fetch_employees(self) -> Any:
        return self.get_message(EMPLOYEES_METHOD)

    def fetch_leave_dashboard(self) -> Any:
        return self.get_message(LEAVE_DASHBOARD_METHOD)

    def fetch_work_hours(self, *, start_date: str, end_date: str | None = None) -> Any:
        if end_date is None or end_date == start_date:
            params = {"date_str": start_date}
        else:
            params = {"start_date": start_date, "end_date": end_date}
        return self.get_message(WORK_HOURS_METHOD, params)


@contextmanager
def get_erp_client(settings: ErpSettings | None = None) -> Iterator[ErpClient]:
    resolved = settings or get_erp_settings()
    validate_erp_settings(resolved)
    log_erp_target_once(resolved)
    client = ErpClient(resolved)
    try:
        yield client
    finally:
        client.close()
