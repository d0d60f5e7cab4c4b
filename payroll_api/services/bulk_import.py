"""
Salary structure import from CSV / XLSX uploads.

Each row names an employee (employeeId code, or fullName) and carries the
compensation inputs. Rows that match no employee are skipped, not failed:
partial imports are the normal case. Custom component columns use a small
inline format:  "Conveyance:500,Medical:250".
"""
from __future__ import annotations
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from openpyxl import Workbook, load_workbook
from sqlalchemy.exc import SQLAlchemyError

from payroll_api.extensions import db
from payroll_api.common.errors import APIError, EmployeeNotFound, InvalidCompensationInputs
from payroll_api.models.employee import Employee
from payroll_api.services.payroll_common import OperationSummary, run_bounded
from payroll_api.services.payroll_config import CalculationConfig, load_config
from payroll_api.services.salary_calc import (
    CompensationInputs, CustomComponent, SalaryBreakdown, calculate_salary, parse_flag,
)
from payroll_api.services.structure_service import save_structure
from payroll_api.services.tax_estimator import parse_regime

log = logging.getLogger(__name__)

# column layout of the import file, with the example row used by the sample download
SAMPLE_ROW: List[Tuple[str, Any]] = [
    ("employeeId", "EMP001"),
    ("fullName", "John Doe"),
    ("basic", 15225),
    ("da", 775),
    ("totalDays", 30),
    ("paidDays", 30),
    ("singleOTHours", 0),
    ("doubleOTHours", 0),
    ("difference", 0),
    ("advance", 0),
    ("isSkillBased", "no"),
    ("skillCategory", ""),
    ("skillAmount", 0),
    ("customAllowances", "Conveyance:500,Medical:250"),
    ("customBonuses", "Performance:1000"),
    ("customDeductions", "Canteen:300"),
    ("taxRegime", "old"),
    ("esicNumber", "3100123456"),
    ("uanNumber", "100200300400"),
]
IMPORT_COLUMNS = [name for name, _ in SAMPLE_ROW]

# normalised header -> field
_HEADER_ALIASES = {
    "employeeid": "employee_code", "employeecode": "employee_code", "empcode": "employee_code", "code": "employee_code",
    "fullname": "full_name", "name": "full_name", "employeename": "full_name",
    "basic": "basic", "basicsalary": "basic",
    "da": "da", "dearnessallowance": "da",
    "totaldays": "total_days",
    "paiddays": "paid_days",
    "singleothours": "single_ot_hours", "singleot": "single_ot_hours",
    "doubleothours": "double_ot_hours", "doubleot": "double_ot_hours",
    "difference": "difference",
    "advance": "advance",
    "isskillbased": "is_skill_based", "skillbased": "is_skill_based",
    "skillcategory": "skill_category",
    "skillamount": "skill_amount",
    "customallowances": "custom_allowances",
    "custombonuses": "custom_bonuses",
    "customdeductions": "custom_deductions",
    "taxregime": "tax_regime",
    "esicnumber": "esic_number", "esicno": "esic_number",
    "uannumber": "uan_number", "uan": "uan_number",
}
_NUMERIC_FIELDS = ("basic", "da", "single_ot_hours", "double_ot_hours", "difference", "advance", "skill_amount")
# width of the employee esic_number / uan_number columns
IDENTIFIER_MAX_LENGTH = 32


def _norm_header(key: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(key or "").lower())


def normalize_row(row: Mapping[Any, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in row.items():
        name = _HEADER_ALIASES.get(_norm_header(k))
        if name is None:
            continue
        if isinstance(v, str):
            v = v.strip()
        out[name] = v
    return out


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def parse_number(v: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Blank, unparseable or non-finite → default."""
    if _blank(v) or isinstance(v, bool):
        return default
    try:
        value = Decimal(str(v).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return default
    return value if value.is_finite() else default


def decode_components(raw: Any) -> List[CustomComponent]:
    """'label:amount' entries separated by ','; blank labels, non-finite and non-positive amounts are dropped."""
    out: List[CustomComponent] = []
    if _blank(raw):
        return out
    seen = set()
    for entry in str(raw).split(","):
        label, sep, amount = entry.rpartition(":")
        label = label.strip()
        if not sep or not label:
            continue
        try:
            value = Decimal(amount.strip())
        except (InvalidOperation, ValueError):
            continue
        if not value.is_finite() or value <= 0:
            continue
        if label.casefold() in seen:
            log.warning("import: duplicate component label %r ignored", label)
            continue
        seen.add(label.casefold())
        out.append(CustomComponent(label, value))
    return out


@dataclass
class ParsedRow:
    inputs: CompensationInputs
    tax_regime: Optional[str] = None
    identifiers: Dict[str, str] = field(default_factory=dict)


def parse_row(row: Mapping[str, Any], config: CalculationConfig) -> ParsedRow:
    """Turn a normalised row into compensation inputs. Raises InvalidCompensationInputs/InvalidTaxRegime."""
    total_days = parse_number(row.get("total_days"), default=config.standard_working_days)
    paid_days = parse_number(row.get("paid_days"), default=total_days)
    kw: Dict[str, Any] = {f: parse_number(row.get(f)) for f in _NUMERIC_FIELDS}
    inputs = CompensationInputs(
        total_days=total_days,
        paid_days=paid_days,
        is_skill_based=parse_flag(row.get("is_skill_based") or False),
        skill_category=row.get("skill_category") or None,
        custom_allowances=decode_components(row.get("custom_allowances")),
        custom_bonuses=decode_components(row.get("custom_bonuses")),
        custom_deductions=decode_components(row.get("custom_deductions")),
        **kw,
    )
    regime = row.get("tax_regime")
    regime = None if _blank(regime) else parse_regime(regime).value

    ids = {}
    for f in ("esic_number", "uan_number"):
        if not _blank(row.get(f)):
            value = str(row[f]).strip()
            if len(value) > IDENTIFIER_MAX_LENGTH:
                raise InvalidCompensationInputs(
                    f"{f} must be at most {IDENTIFIER_MAX_LENGTH} characters", payload={"field": f, "value": value})
            ids[f] = value
    return ParsedRow(inputs=inputs, tax_regime=regime, identifiers=ids)


# ---------- employee lookup ----------
def _name_key(name: Any) -> str:
    return " ".join(str(name).split()).casefold()


class EmployeeIndex:
    """Code and full-name lookup for one company, built once per import."""

    def __init__(self, employees: Sequence[Employee]):
        self.by_code: Dict[str, Employee] = {}
        self.by_name: Dict[str, List[Employee]] = {}
        for e in employees:
            if e.code:
                self.by_code[str(e.code).strip().casefold()] = e
            if e.full_name:
                self.by_name.setdefault(_name_key(e.full_name), []).append(e)

    @classmethod
    def for_company(cls, company_id: int) -> "EmployeeIndex":
        emps = Employee.query.filter(Employee.company_id == company_id, Employee.status != "inactive").all()
        return cls(emps)

    def find(self, row: Mapping[str, Any]) -> Employee:
        code = row.get("employee_code")
        if not _blank(code):
            # xlsx may hand numeric codes back as floats
            if isinstance(code, float) and code.is_integer():
                code = int(code)
            emp = self.by_code.get(str(code).strip().casefold())
            if emp is not None:
                return emp
        name = row.get("full_name")
        if not _blank(name):
            matches = self.by_name.get(_name_key(name), [])
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                raise EmployeeNotFound(f"full name '{name}' matches {len(matches)} employees")
        raise EmployeeNotFound("no employee matches row", payload={"employee_id": code, "full_name": name})


# ---------- import ----------
def import_rows(rows: Sequence[Mapping[str, Any]], company_id: int, updated_by: Optional[str] = None,
                max_workers: int = 4, max_rows: Optional[int] = None) -> OperationSummary:
    """
    Parse, calculate and store one structure per matched row.

    Row refs in the summary are spreadsheet row numbers (header is row 1).
    """
    if max_rows is not None and len(rows) > max_rows:
        raise InvalidCompensationInputs(f"import is limited to {max_rows} rows", payload={"rows": len(rows)})

    summary = OperationSummary()
    cfg = load_config(company_id)
    index = EmployeeIndex.for_company(company_id)

    matched: Dict[int, Tuple[Employee, Dict[str, Any]]] = {}
    for i, raw in enumerate(rows, start=2):
        row = normalize_row(raw)
        if not any(not _blank(v) for v in row.values()):
            continue
        try:
            matched[i] = (index.find(row), row)
        except EmployeeNotFound as e:
            log.warning("import row %s skipped: %s", i, e.message)
            summary.skip(i, e.message)

    def _prepare(row: Mapping[str, Any]) -> Tuple[ParsedRow, SalaryBreakdown]:
        parsed = parse_row(row, cfg)
        return parsed, calculate_salary(parsed.inputs, cfg)

    result = run_bounded(_prepare, [(i, row) for i, (_, row) in matched.items()], max_workers=max_workers)

    for i in sorted(matched):
        emp = matched[i][0]
        if i in result.errors:
            err = result.errors[i]
            log.warning("import row %s (employee %s) failed: %s", i, emp.id, err)
            summary.fail(i, err)
            continue
        parsed, breakdown = result.done[i]
        try:
            for f, v in parsed.identifiers.items():
                setattr(emp, f, v)
            save_structure(emp, parsed.inputs, tax_regime=parsed.tax_regime, config=cfg,
                           updated_by=updated_by, breakdown=breakdown)
        except APIError as e:
            db.session.rollback()
            summary.fail(i, e)
            continue
        except SQLAlchemyError as e:
            db.session.rollback()
            log.warning("import row %s (employee %s) could not be stored: %s", i, emp.id, e)
            summary.fail(i, e)
            continue
        summary.succeeded.append({"row": i, "employee_id": emp.id})

    log.info("import for company %s: %s", company_id, summary.counts())
    return summary


# ---------- file readers ----------
def _rows_from_csv(data: bytes) -> List[Dict[str, Any]]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    return [dict(r) for r in csv.DictReader(io.StringIO(text))]


def _rows_from_xlsx(data: bytes) -> List[Dict[str, Any]]:
    wb = load_workbook(io.BytesIO(data), data_only=True, read_only=True)
    ws = wb.active
    headers: List[str] = []
    rows: List[Dict[str, Any]] = []
    for i, row in enumerate(ws.iter_rows(values_only=True), start=1):
        if i == 1:
            headers = [str(h).strip() if h is not None else "" for h in row]
            continue
        rec = {}
        for j, val in enumerate(row):
            key = headers[j] if j < len(headers) else f"col{j+1}"
            rec[key] = val if val is not None else ""
        rows.append(rec)
    wb.close()
    return rows


def read_rows(filename: str, data: bytes) -> List[Dict[str, Any]]:
    fn = (filename or "").lower().strip()
    if fn.endswith(".csv"):
        return _rows_from_csv(data)
    if fn.endswith((".xlsx", ".xlsm")):
        return _rows_from_xlsx(data)
    raise InvalidCompensationInputs("upload a .csv or .xlsx file", payload={"filename": filename})


def build_sample_workbook() -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Salary Structures"
    ws.append(IMPORT_COLUMNS)
    ws.append([value for _, value in SAMPLE_ROW])
    bio = io.BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio
