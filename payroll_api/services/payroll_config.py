from __future__ import annotations
from dataclasses import dataclass, fields, asdict
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from payroll_api.common.errors import InvalidCompensationInputs


@dataclass(frozen=True)
class CalculationConfig:
    """Per-organisation calculation parameters, read once per calculation."""
    hra_percentage: Decimal = Decimal("5")
    esic_employee_percentage: Decimal = Decimal("0.75")
    esic_employer_percentage: Decimal = Decimal("3.25")
    pf_employee_percentage: Decimal = Decimal("12")
    pf_employer_percentage: Decimal = Decimal("13")
    mlwf_employer_amount: Decimal = Decimal("1")
    standard_working_days: Decimal = Decimal("30")

    def as_dict(self) -> Dict[str, float]:
        return {k: float(v) for k, v in asdict(self).items()}


DEFAULT_CONFIG = CalculationConfig()

# camelCase names used by the surrounding application and import files
_ALIASES = {
    "hraPercentage": "hra_percentage",
    "esicEmployeePercentage": "esic_employee_percentage",
    "esicEmployerPercentage": "esic_employer_percentage",
    "pfEmployeePercentage": "pf_employee_percentage",
    "pfEmployerPercentage": "pf_employer_percentage",
    "mlwfEmployerAmount": "mlwf_employer_amount",
    "standardWorkingDays": "standard_working_days",
}


def _read(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        if name in source:
            return source[name]
        for alias, canonical in _ALIASES.items():
            if canonical == name and alias in source:
                return source[alias]
        return None
    return getattr(source, name, None)


def resolve_config(source: Any = None) -> CalculationConfig:
    """
    Build a CalculationConfig from a PayrollSettings row, a mapping, or None.

    This is the only place defaults are applied: any field that is absent,
    None or blank falls back to DEFAULT_CONFIG.
    """
    if source is None:
        return DEFAULT_CONFIG
    if isinstance(source, CalculationConfig):
        return source

    values: Dict[str, Decimal] = {}
    for f in fields(CalculationConfig):
        raw = _read(source, f.name)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        try:
            val = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError):
            raise InvalidCompensationInputs(f"{f.name} must be numeric", payload={"field": f.name, "value": str(raw)})
        if not val.is_finite():
            raise InvalidCompensationInputs(f"{f.name} must be a finite number", payload={"field": f.name, "value": str(raw)})
        if val < 0:
            raise InvalidCompensationInputs(f"{f.name} must not be negative", payload={"field": f.name})
        values[f.name] = val
    return CalculationConfig(**values)


def load_config(company_id: Optional[int]) -> CalculationConfig:
    """Resolve the stored settings for a company; missing row → defaults."""
    if company_id is None:
        return DEFAULT_CONFIG
    from payroll_api.models.payroll.settings import PayrollSettings

    row = PayrollSettings.query.filter_by(company_id=company_id).first()
    return resolve_config(row)


def save_settings(company_id: int, data: Mapping[str, Any], updated_by: Optional[str] = None):
    """Validate and upsert a company's settings; fields left out keep their stored value."""
    from payroll_api.extensions import db
    from payroll_api.models.payroll.settings import PayrollSettings

    row = PayrollSettings.query.filter_by(company_id=company_id).first()
    merged = {f.name: getattr(row, f.name, None) for f in fields(CalculationConfig)}
    for f in fields(CalculationConfig):
        if f.name in data or any(a in data for a, c in _ALIASES.items() if c == f.name):
            merged[f.name] = _read(data, f.name)
    cfg = resolve_config(merged)  # raises on bad values before anything is written

    if row is None:
        row = PayrollSettings(company_id=company_id)
        db.session.add(row)

    for name, value in merged.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            setattr(row, name, None)
        else:
            value = getattr(cfg, name)
            setattr(row, name, int(value) if name == "standard_working_days" else value)
    row.updated_by = updated_by
    db.session.commit()
    return row, cfg
