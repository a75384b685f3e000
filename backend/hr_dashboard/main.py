from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import reports
from .config import ErpSettings, get_erp_settings, validate_erp_settings
from .erp_client import ErpClient, ErpError, SESSION_COOKIE, get_erp_client
from .pdf_exports import (
    NoDataError,
    PdfExportError,
    PdfLayoutError,
    employee_attendance_filename,
    generate_employee_attendance_pdf,
    generate_work_hours_pdf,
    work_hours_pdf_filename,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

AUTH_COOKIE = "auth"

app = FastAPI(
    title="HR Reporting Dashboard",
    version="1.0.0",
    description="Employee, leave balance and work hour reports over the ERP API",
)

_EXPORT_LOCKS = {
    "work-hours": threading.Lock(),
    "attendance": threading.Lock(),
}


class LoginRequest(BaseModel):
    usr: str
    pwd: str


def get_settings() -> ErpSettings:
    return get_erp_settings()


def get_client(settings: ErpSettings = Depends(get_settings)) -> Iterator[ErpClient]:
    try:
        validate_erp_settings(settings)
    except RuntimeError as exc:
        logger.error("ERP configuration invalid: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="API configuration missing") from exc
    with get_erp_client(settings) as client:
        yield client


def get_session_client(settings: ErpSettings = Depends(get_settings)) -> Iterator[ErpClient]:
    if not settings.api_url:
        logger.error("ERP configuration invalid: ERP_API_URL is empty")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="API configuration missing")
    with ErpClient(settings) as client:
        yield client


@contextmanager
def _export_slot(kind: str) -> Iterator[None]:
    lock = _EXPORT_LOCKS[kind]
    if not lock.acquire(blocking=False):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An export is already in progress")
    try:
        yield
    finally:
        lock.release()


def _view_response(payload: Dict[str, Any]) -> JSONResponse:
    if payload.get("state") == "error":
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=payload)
    return JSONResponse(content=payload)


def _pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.exception_handler(NoDataError)
async def no_data_handler(request: Request, exc: NoDataError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(PdfLayoutError)
async def pdf_layout_handler(request: Request, exc: PdfLayoutError) -> JSONResponse:
    logger.error("PDF export failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


@app.exception_handler(PdfExportError)
async def pdf_export_handler(request: Request, exc: PdfExportError) -> JSONResponse:
    logger.error("PDF export failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


@app.post("/api/login")
def login(body: LoginRequest, client: ErpClient = Depends(get_session_client)) -> JSONResponse:
    try:
        ok, data, sid = client.login(body.usr, body.pwd)
    except ErpError as exc:
        logger.warning("Login proxy failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Login service unavailable") from exc

    if not ok:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=data)

    payload = dict(data)
    payload["auth_state"] = {"user": {"name": data.get("full_name") or body.usr, "email": body.usr}}
    response = JSONResponse(content=payload)
    response.set_cookie(AUTH_COOKIE, "yes", path="/", httponly=False, secure=False)
    if sid:
        response.set_cookie(SESSION_COOKIE, sid, path="/", httponly=True)
    return response


@app.post("/api/logout")
def logout(request: Request, client: ErpClient = Depends(get_session_client)) -> JSONResponse:
    try:
        client.logout(request.cookies.get(SESSION_COOKIE))
    except ErpError as exc:
        logger.warning("ERP logout failed: %s", exc)

    response = JSONResponse(content={"message": "Logged Out"})
    response.delete_cookie(AUTH_COOKIE, path="/")
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@app.get("/api/reports/employees")
def employees_report(
    q: str = "",
    department: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    company: str | None = None,
    sort: str | None = None,
    dir: str | None = None,
    page: int = 1,
    page_size: int | None = None,
    view: str = "table",
    client: ErpClient = Depends(get_client),
) -> JSONResponse:
    state = reports.build_grid_state(
        reports.EMPLOYEE_VIEW,
        mode=view,
        query=q,
        filters={"department": department, "status": status_filter, "company": company},
        sort_key=sort,
        sort_dir=dir,
        page=page,
        page_size=page_size,
    )
    return _view_response(reports.employee_directory_view(client, state, mode=view))


@app.get("/api/reports/leave-balances")
def leave_balances_report(
    q: str = "",
    department: str | None = None,
    sort: str | None = None,
    dir: str | None = None,
    page: int = 1,
    page_size: int | None = None,
    view: str = "table",
    client: ErpClient = Depends(get_client),
) -> JSONResponse:
    state = reports.build_grid_state(
        reports.LEAVE_BALANCE_VIEW,
        mode=view,
        query=q,
        filters={"department": department},
        sort_key=sort,
        sort_dir=dir,
        page=page,
        page_size=page_size,
    )
    return _view_response(reports.leave_balances_view(client, state, mode=view))


@app.get("/api/reports/work-hours")
def work_hours_report(
    date: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    q: str = "",
    department: str | None = None,
    designation: str | None = None,
    sort: str | None = None,
    dir: str | None = None,
    page: int = 1,
    page_size: int | None = None,
    view: str = "table",
    settings: ErpSettings = Depends(get_settings),
    client: ErpClient = Depends(get_client),
) -> JSONResponse:
    start, end = reports.resolve_period(settings, date_value=date, start_date=start_date, end_date=end_date)
    state = reports.build_grid_state(
        reports.work_hours_view_for(start, end),
        mode=view,
        query=q,
        filters={"department": department, "designation": designation},
        sort_key=sort,
        sort_dir=dir,
        page=page,
        page_size=page_size,
    )
    payload = reports.work_hours_view(
        client,
        state,
        start_date=start,
        end_date=end,
        mode=view,
        policy=settings.open_shift_policy,
    )
    return _view_response(payload)


@app.get("/api/dashboard")
def dashboard(
    date: str | None = None,
    settings: ErpSettings = Depends(get_settings),
    client: ErpClient = Depends(get_client),
) -> Dict[str, Any]:
    return reports.fetch_dashboard_summary(client, settings, date)


@app.get("/api/exports/work-hours.pdf")
def export_work_hours_pdf(
    date: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    q: str = "",
    department: str | None = None,
    designation: str | None = None,
    sort: str | None = None,
    dir: str | None = None,
    settings: ErpSettings = Depends(get_settings),
    client: ErpClient = Depends(get_client),
) -> Response:
    start, end = reports.resolve_period(settings, date_value=date, start_date=start_date, end_date=end_date)
    view = reports.work_hours_view_for(start, end)
    state = reports.build_grid_state(
        view,
        query=q,
        filters={"department": department, "designation": designation},
        sort_key=sort,
        sort_dir=dir,
    )

    with _export_slot("work-hours"):
        try:
            records = reports.filtered_work_hours(
                client,
                state,
                start_date=start,
                end_date=end,
                policy=settings.open_shift_policy,
            )
        except ErpError as exc:
            logger.warning("Work hours export fetch failed: %s", exc)
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=view.error_message) from exc

        content = generate_work_hours_pdf(
            records,
            start_date=start,
            end_date=end,
            filters=state.filters,
            summary_stats=reports.work_hours_summary(records, settings),
            company_name=settings.company_name,
        )

    logger.info("Exported work hours PDF for %s..%s (%s rows)", start, end, len(records))
    return _pdf_response(content, work_hours_pdf_filename(start, end, state.filters))


@app.get("/api/exports/employees/{employee}/attendance.pdf")
def export_employee_attendance_pdf(
    employee: str,
    start_date: str,
    end_date: str,
    settings: ErpSettings = Depends(get_settings),
    client: ErpClient = Depends(get_client),
) -> Response:
    start, end = reports.resolve_period(settings, start_date=start_date, end_date=end_date)

    with _export_slot("attendance"):
        try:
            records = reports.employee_attendance_records(
                client,
                employee,
                start_date=start,
                end_date=end,
                policy=settings.open_shift_policy,
            )
        except ErpError as exc:
            logger.warning("Attendance export fetch failed for %s: %s", employee, exc)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=reports.WORK_HOURS_VIEW.error_message,
            ) from exc

        employee_name = (records[0].get("name") if records else None) or employee
        content = generate_employee_attendance_pdf(
            records,
            employee_name=employee_name,
            start_date=start,
            end_date=end,
            company_name=settings.company_name,
        )

    return _pdf_response(content, employee_attendance_filename(employee_name, start, end))


@app.get("/health", tags=["Health"])
def health_check() -> Dict[str, Any]:
    return {
        "status": "up",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app.version,
    }
