from __future__ import annotations
from typing import Any, Mapping

from flask import Blueprint, current_app, request

from payroll_api.common.errors import APIError
from payroll_api.common.http import ok
from payroll_api.models.payroll.pay_run import PayrollRecord
from payroll_api.services.payroll_run import (
    RECORD_TRANSITIONS, PayrollRunCoordinator, period_summary, record_row, set_record_status,
)

bp = Blueprint("payroll_runs", __name__, url_prefix="/api/v1/payroll")


# ---------- helpers ----------
def _int(src: Mapping[str, Any], *names, required=True):
    for n in names:
        v = src.get(n)
        if v not in (None, ""):
            try:
                return int(v)
            except (TypeError, ValueError):
                raise APIError("VALIDATION_ERROR", f"{names[0]} must be an integer", 400)
    if required:
        raise APIError("VALIDATION_ERROR", f"{names[0]} is required", 400)
    return None


def _period(src: Mapping[str, Any]):
    return _int(src, "company_id", "companyId"), _int(src, "month"), _int(src, "year")


def _coordinator(company_id: int, data: Mapping[str, Any]) -> PayrollRunCoordinator:
    return PayrollRunCoordinator(
        company_id,
        processed_by=data.get("processed_by") or data.get("processedBy"),
        max_workers=current_app.config["PAYROLL_MAX_WORKERS"],
    )


# ---------- runs ----------
@bp.post("/runs")
def create_run():
    data = request.get_json(silent=True) or {}
    company_id, month, year = _period(data)
    summary = _coordinator(company_id, data).process(month, year)
    summary.raise_for_failures()
    return ok(summary.as_dict(), status=201, **summary.counts())


@bp.post("/runs/retry")
def retry_run():
    data = request.get_json(silent=True) or {}
    company_id, month, year = _period(data)
    ids = data.get("employee_ids") or data.get("employeeIds")
    if ids is not None and not isinstance(ids, list):
        raise APIError("VALIDATION_ERROR", "employee_ids must be a list", 400)
    summary = _coordinator(company_id, data).retry(month, year, employee_ids=ids)
    summary.raise_for_failures()
    return ok(summary.as_dict(), **summary.counts())


# ---------- records ----------
@bp.get("/records")
def list_records():
    company_id, month, year = _period(request.args)
    q = PayrollRecord.query.filter_by(company_id=company_id, month=month, year=year)
    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in RECORD_TRANSITIONS:
            raise APIError("VALIDATION_ERROR", f"unknown status '{status}'", 400)
        q = q.filter(PayrollRecord.status == status)
    items = [record_row(r) for r in q.order_by(PayrollRecord.employee_id.asc()).all()]
    return ok(items, total=len(items))


@bp.patch("/records/<int:record_id>/status")
def update_record_status(record_id: int):
    data = request.get_json(silent=True) or {}
    rec = set_record_status(record_id, data.get("status"))
    return ok(record_row(rec))


@bp.get("/summary")
def summary():
    company_id, month, year = _period(request.args)
    return ok(period_summary(company_id, month, year))
