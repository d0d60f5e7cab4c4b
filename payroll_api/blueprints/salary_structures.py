from __future__ import annotations
from typing import Any, Dict, Mapping

from flask import Blueprint, request

from payroll_api.extensions import db
from payroll_api.common.errors import APIError, EmployeeNotFound
from payroll_api.common.http import ok
from payroll_api.models.employee import Employee
from payroll_api.services.payroll_config import load_config
from payroll_api.services.salary_calc import CompensationInputs, calculate_salary
from payroll_api.services.structure_service import (
    OVERRIDE_FIELDS, bulk_update_structures, get_structure, inputs_from_structure,
    save_structure, structure_row,
)

bp = Blueprint("salary_structures", __name__, url_prefix="/api/v1/salary-structures")

_OVERRIDE_ALIASES = {"grossSalary": "gross_salary", "netSalary": "net_salary", "taxAmount": "tax_amount"}


# ---------- helpers ----------
def _json() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise APIError("VALIDATION_ERROR", "JSON object body required", 400)
    return data


def _actor(data: Mapping[str, Any]):
    return data.get("updated_by") or data.get("updatedBy")


def _overrides(data: Mapping[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in data.items():
        name = _OVERRIDE_ALIASES.get(k, k)
        if name in OVERRIDE_FIELDS:
            out[name] = v
    return out


# ---------- routes ----------
@bp.get("/<int:employee_id>")
def get_one(employee_id: int):
    return ok(structure_row(get_structure(employee_id)))


@bp.put("/<int:employee_id>")
def put_one(employee_id: int):
    """
    Body: inputs at top level (or under "inputs"), plus optional
    tax_regime and gross_salary / net_salary / tax_amount overrides.
    Keys not sent keep their stored value.
    """
    data = _json()
    emp = db.session.get(Employee, employee_id)
    if emp is None:
        raise EmployeeNotFound(f"employee {employee_id} not found")

    src = data.get("inputs") if isinstance(data.get("inputs"), dict) else data
    base = inputs_from_structure(emp.salary_structure) if emp.salary_structure is not None else None
    inputs = CompensationInputs.from_mapping(src, base=base)
    s = save_structure(
        emp, inputs,
        tax_regime=data.get("tax_regime") or data.get("taxRegime"),
        overrides=_overrides(data),
        updated_by=_actor(data),
    )
    return ok(structure_row(s))


@bp.post("/preview")
def preview():
    """Calculate a breakdown without storing anything."""
    data = _json()
    src = data.get("inputs") if isinstance(data.get("inputs"), dict) else data
    inputs = CompensationInputs.from_mapping(src)
    company_id = data.get("company_id") or data.get("companyId")
    breakdown = calculate_salary(inputs, load_config(int(company_id) if company_id else None))
    return ok(breakdown.as_dict())


@bp.post("/bulk-edit")
def bulk_edit():
    data = _json()
    ids = data.get("employee_ids") or data.get("employeeIds") or []
    changes = data.get("changes") or {}
    if not isinstance(ids, list) or not ids:
        raise APIError("VALIDATION_ERROR", "employee_ids must be a non-empty list", 400)
    if not isinstance(changes, dict) or not changes:
        raise APIError("VALIDATION_ERROR", "changes must be a non-empty object", 400)
    try:
        ids = [int(x) for x in ids]
    except (TypeError, ValueError):
        raise APIError("VALIDATION_ERROR", "employee_ids must be integers", 400)

    summary = bulk_update_structures(ids, changes, updated_by=_actor(data))
    return ok(summary.as_dict(), **summary.counts())
