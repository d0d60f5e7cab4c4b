from __future__ import annotations
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional

from payroll_api.extensions import db
from payroll_api.common.errors import APIError, EmployeeNotFound, InvalidCompensationInputs
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.salary_structure import EmployeeSalaryStructure
from payroll_api.services.payroll_common import OperationSummary
from payroll_api.services.payroll_config import CalculationConfig, load_config
from payroll_api.services.salary_calc import CompensationInputs, SalaryBreakdown, calculate_salary
from payroll_api.services.tax_estimator import DEFAULT_REGIME, parse_regime

log = logging.getLogger(__name__)

_INPUT_COLUMNS = (
    "basic", "da", "total_days", "paid_days", "single_ot_hours", "double_ot_hours",
    "difference", "advance", "is_skill_based", "skill_category", "skill_amount",
)
_LIST_COLUMNS = ("custom_allowances", "custom_bonuses", "custom_deductions")
OVERRIDE_FIELDS = ("gross_salary", "net_salary", "tax_amount")


def inputs_from_structure(s: EmployeeSalaryStructure) -> CompensationInputs:
    kw: Dict[str, Any] = {c: getattr(s, c) for c in _INPUT_COLUMNS}
    for c in _LIST_COLUMNS:
        kw[c] = getattr(s, c) or []
    return CompensationInputs(**kw)


def _write_inputs(s: EmployeeSalaryStructure, inputs: CompensationInputs) -> None:
    for c in _INPUT_COLUMNS:
        setattr(s, c, getattr(inputs, c))
    for c in _LIST_COLUMNS:
        setattr(s, c, [x.as_dict() for x in getattr(inputs, c)])


def _override(overrides: Optional[Mapping[str, Any]], key: str) -> Optional[Decimal]:
    if not overrides or overrides.get(key) in (None, ""):
        return None
    try:
        value = Decimal(str(overrides[key]))
    except (InvalidOperation, ValueError):
        raise InvalidCompensationInputs(f"{key} must be numeric", payload={"field": key})
    if not value.is_finite():
        raise InvalidCompensationInputs(f"{key} must be a finite number", payload={"field": key})
    return value


def save_structure(employee: Employee, inputs: CompensationInputs, tax_regime=None,
                   config: Optional[CalculationConfig] = None,
                   overrides: Optional[Mapping[str, Any]] = None,
                   updated_by: Optional[str] = None, commit: bool = True,
                   breakdown: Optional[SalaryBreakdown] = None) -> EmployeeSalaryStructure:
    """
    Recalculate and store the employee's current structure.

    `overrides` may carry hand-tuned gross_salary / net_salary / tax_amount;
    payroll runs honour those over freshly recomputed values.
    Calculation errors (InvalidPeriod, ...) propagate to the caller.
    """
    if breakdown is None:
        cfg = config if config is not None else load_config(employee.company_id)
        breakdown = calculate_salary(inputs, cfg)

    s = employee.salary_structure
    previous = parse_regime(s.tax_regime if s is not None else None, default=DEFAULT_REGIME)
    regime = parse_regime(tax_regime, default=previous)
    gross = _override(overrides, "gross_salary")
    net = _override(overrides, "net_salary")
    tax = _override(overrides, "tax_amount")

    if s is None:
        s = EmployeeSalaryStructure(employee_id=employee.id)
        db.session.add(s)
        employee.salary_structure = s

    _write_inputs(s, inputs)
    s.tax_regime = regime.value
    s.breakdown = breakdown.as_dict()

    s.gross_salary = gross if gross is not None else breakdown.total_gross_earning
    s.net_salary = net if net is not None else breakdown.net_salary
    s.tax_amount = tax if tax is not None else Decimal("0")
    s.updated_by = updated_by

    if breakdown.net_salary < 0:
        log.warning("employee %s: deductions exceed earnings (net %s)", employee.id, breakdown.net_salary)

    if commit:
        db.session.commit()
    return s


def get_structure(employee_id: int) -> EmployeeSalaryStructure:
    emp = db.session.get(Employee, employee_id)
    if emp is None:
        raise EmployeeNotFound(f"employee {employee_id} not found")
    if emp.salary_structure is None:
        raise EmployeeNotFound(f"employee {employee_id} has no salary structure")
    return emp.salary_structure


def structure_row(s: EmployeeSalaryStructure) -> Dict[str, Any]:
    return {
        "employee_id": s.employee_id,
        "tax_regime": s.tax_regime,
        "inputs": inputs_from_structure(s).as_dict(),
        "breakdown": s.breakdown,
        "gross_salary": float(s.gross_salary or 0),
        "net_salary": float(s.net_salary or 0),
        "tax_amount": float(s.tax_amount or 0),
        "updated_by": s.updated_by,
        "updated_at": s.updated_at.isoformat() if s.updated_at else None,
    }


def bulk_update_structures(employee_ids: Iterable[int], changes: Mapping[str, Any],
                           updated_by: Optional[str] = None) -> OperationSummary:
    """Apply the same partial change to many employees, recalculating each one."""
    summary = OperationSummary()
    changes = dict(changes or {})
    regime = changes.pop("tax_regime", None) or changes.pop("taxRegime", None)
    configs: Dict[int, CalculationConfig] = {}

    for emp_id in employee_ids:
        emp = db.session.get(Employee, emp_id)
        if emp is None:
            log.warning("bulk edit: employee %s not found, skipped", emp_id)
            summary.skip(emp_id, "employee not found")
            continue
        try:
            cur = emp.salary_structure
            base = inputs_from_structure(cur) if cur is not None else None
            inputs = CompensationInputs.from_mapping(changes, base=base)
            if emp.company_id not in configs:
                configs[emp.company_id] = load_config(emp.company_id)
            save_structure(emp, inputs, tax_regime=regime, config=configs[emp.company_id],
                           updated_by=updated_by)
            summary.succeeded.append(emp_id)
        except APIError as e:
            db.session.rollback()
            log.warning("bulk edit: employee %s failed: %s", emp_id, e.message)
            summary.fail(emp_id, e)
    return summary
