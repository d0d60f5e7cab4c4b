from __future__ import annotations

from flask import Blueprint, current_app, request, send_file

from payroll_api.common.errors import APIError
from payroll_api.common.http import ok
from payroll_api.services.bulk_import import build_sample_workbook, import_rows, read_rows

bp = Blueprint("salary_import", __name__, url_prefix="/api/v1/salary-structures")

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _read_payload():
    """
    multipart/form-data: field 'file' (.csv/.xlsx) + form field 'company_id'
    JSON: { "company_id": 1, "rows": [ {...}, ... ] }
    """
    ctype = request.content_type or ""
    if "multipart/form-data" in ctype:
        f = request.files.get("file")
        if not f:
            raise APIError("VALIDATION_ERROR", "file is required", 400)
        return read_rows(f.filename, f.read()), request.form.to_dict()
    data = request.get_json(silent=True) or {}
    rows = data.get("rows")
    if not isinstance(rows, list):
        raise APIError("VALIDATION_ERROR", "rows must be a list", 400)
    return rows, data


@bp.post("/import")
def import_structures():
    rows, meta = _read_payload()
    try:
        company_id = int(meta.get("company_id") or meta.get("companyId"))
    except (TypeError, ValueError):
        raise APIError("VALIDATION_ERROR", "company_id is required", 400)

    summary = import_rows(
        rows, company_id,
        updated_by=meta.get("updated_by") or meta.get("updatedBy"),
        max_workers=current_app.config["PAYROLL_MAX_WORKERS"],
        max_rows=current_app.config["PAYROLL_IMPORT_MAX_ROWS"],
    )
    return ok(summary.as_dict(), **summary.counts())


@bp.get("/import/sample")
def import_sample():
    bio = build_sample_workbook()
    return send_file(bio, mimetype=XLSX_MIME, as_attachment=True,
                     download_name="salary_structure_sample.xlsx")
