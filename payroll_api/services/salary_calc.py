"""
Salary structure calculation.

Pipeline, leaf first:

    resolve_compensation  -> (effective basic, effective DA)
    compute_earnings      -> HRA, gross rate, prorated gross, overtime, total gross
    compute_deductions    -> PT, employee ESIC/PF, custom deductions, advance, net
    compute_employer_contributions -> employer ESIC/PF, MLWF, CTC

Every function here is pure: no database, no Flask, no shared state. They are
safe to call from worker threads.

Rounding: every money figure is rounded to a whole currency unit, half away
from zero (ROUND_HALF_UP), except ESIC (employee and employer) which always
rounds up (ROUND_CEILING).
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, ROUND_CEILING
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from payroll_api.common.errors import InvalidPeriod, InvalidCompensationInputs
from payroll_api.services.payroll_config import CalculationConfig, resolve_config

_ONE = Decimal("1")
_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")
_HOURS_PER_DAY = Decimal("8")

# Professional tax (MH) step function on total gross earning
PT_MIDDLE_SLAB_FROM = Decimal("7501")
PT_MIDDLE_SLAB_TO = Decimal("10000")
PT_MIDDLE_AMOUNT = Decimal("175")
PT_TOP_AMOUNT = Decimal("200")


def round_money(x: Decimal) -> Decimal:
    return x.quantize(_ONE, rounding=ROUND_HALF_UP)


def round_up_money(x: Decimal) -> Decimal:
    return x.quantize(_ONE, rounding=ROUND_CEILING)


def _dec(x: Any, field_name: str, default: Decimal = Decimal("0")) -> Decimal:
    if x is None or (isinstance(x, str) and not x.strip()):
        return default
    if isinstance(x, bool):
        raise InvalidCompensationInputs(f"{field_name} must be numeric")
    if isinstance(x, Decimal):
        value = x
    else:
        try:
            value = Decimal(str(x).strip())
        except (InvalidOperation, ValueError):
            raise InvalidCompensationInputs(f"{field_name} must be numeric", payload={"field": field_name, "value": str(x)})
    if not value.is_finite():
        raise InvalidCompensationInputs(f"{field_name} must be a finite number", payload={"field": field_name, "value": str(x)})
    return value


def parse_flag(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("true", "1", "yes", "y")
    return bool(v)


# ---------- inputs ----------
@dataclass(frozen=True)
class CustomComponent:
    label: str
    amount: Decimal

    def __post_init__(self):
        label = str(self.label).strip() if self.label is not None else ""
        if not label:
            raise InvalidCompensationInputs("custom component label must not be blank")
        amount = _dec(self.amount, f"amount of '{label}'")
        if amount < 0:
            raise InvalidCompensationInputs(f"amount of '{label}' must not be negative", payload={"label": label})
        object.__setattr__(self, "label", label)
        object.__setattr__(self, "amount", amount)

    def as_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "amount": float(self.amount)}


def _components(items: Optional[Iterable[Any]], kind: str) -> Tuple[CustomComponent, ...]:
    out: List[CustomComponent] = []
    seen = set()
    for it in items or ():
        if isinstance(it, CustomComponent):
            comp = it
        elif isinstance(it, Mapping):
            comp = CustomComponent(it.get("label"), it.get("amount"))
        elif isinstance(it, (str, bytes)):
            raise InvalidCompensationInputs(f"{kind} entries must be {{label, amount}} pairs", payload={"entry": str(it)})
        else:
            try:
                label, amount = it
            except (TypeError, ValueError):
                raise InvalidCompensationInputs(f"{kind} entries must be {{label, amount}} pairs")
            comp = CustomComponent(label, amount)
        key = comp.label.casefold()
        if key in seen:
            raise InvalidCompensationInputs(f"duplicate {kind} label '{comp.label}'", payload={"label": comp.label})
        seen.add(key)
        out.append(comp)
    return tuple(out)


@dataclass(frozen=True)
class CompensationInputs:
    basic: Decimal = Decimal("0")
    da: Decimal = Decimal("0")
    total_days: Decimal = Decimal("30")
    paid_days: Decimal = Decimal("30")
    single_ot_hours: Decimal = Decimal("0")
    double_ot_hours: Decimal = Decimal("0")
    difference: Decimal = Decimal("0")
    advance: Decimal = Decimal("0")
    is_skill_based: bool = False
    skill_category: Optional[str] = None
    skill_amount: Decimal = Decimal("0")
    custom_allowances: Tuple[CustomComponent, ...] = field(default_factory=tuple)
    custom_bonuses: Tuple[CustomComponent, ...] = field(default_factory=tuple)
    custom_deductions: Tuple[CustomComponent, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for name in ("basic", "da", "total_days", "paid_days", "single_ot_hours",
                     "double_ot_hours", "difference", "advance", "skill_amount"):
            object.__setattr__(self, name, _dec(getattr(self, name), name))
        object.__setattr__(self, "is_skill_based", parse_flag(self.is_skill_based))
        object.__setattr__(self, "skill_category", str(self.skill_category or "").strip() or None)
        object.__setattr__(self, "custom_allowances", _components(self.custom_allowances, "allowance"))
        object.__setattr__(self, "custom_bonuses", _components(self.custom_bonuses, "bonus"))
        object.__setattr__(self, "custom_deductions", _components(self.custom_deductions, "deduction"))

    _KEYS = {
        "basic": "basic", "da": "da",
        "totalDays": "total_days", "paidDays": "paid_days",
        "singleOTHours": "single_ot_hours", "doubleOTHours": "double_ot_hours",
        "difference": "difference", "advance": "advance",
        "isSkillBased": "is_skill_based", "skillCategory": "skill_category", "skillAmount": "skill_amount",
        "customAllowances": "custom_allowances", "customBonuses": "custom_bonuses",
        "customDeductions": "custom_deductions",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["CompensationInputs"] = None) -> "CompensationInputs":
        """Accepts snake_case or camelCase keys; keys not present keep the value from `base`."""
        kw = base.as_kwargs() if base is not None else {}
        for k, v in (data or {}).items():
            name = cls._KEYS.get(k, k)
            if name in cls.__dataclass_fields__:
                kw[name] = v
        return cls(**kw)

    def as_kwargs(self) -> Dict[str, Any]:
        return {f: getattr(self, f) for f in self.__dataclass_fields__}

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            v = getattr(self, name)
            if isinstance(v, Decimal):
                v = float(v)
            elif isinstance(v, tuple):
                v = [c.as_dict() for c in v]
            out[name] = v
        return out


# ---------- results ----------
@dataclass(frozen=True)
class Earnings:
    hra: Decimal
    custom_allowance_total: Decimal
    gross_rate_pm: Decimal
    gross_earning: Decimal
    ot_rate_per_hour: Decimal
    ot_amount: Decimal
    custom_bonus_total: Decimal
    total_gross_earning: Decimal


@dataclass(frozen=True)
class Deductions:
    professional_tax: Decimal
    esic_employee: Decimal
    pf_base: Decimal
    pf_employee: Decimal
    custom_deduction_total: Decimal
    advance: Decimal
    total_deduction: Decimal
    net_salary: Decimal


@dataclass(frozen=True)
class EmployerContributions:
    esic_employer: Decimal
    pf_employer: Decimal
    mlwf_employer: Decimal
    ctc_per_month: Decimal


@dataclass(frozen=True)
class SalaryBreakdown:
    effective_basic: Decimal
    effective_da: Decimal
    hra: Decimal
    gross_rate_pm: Decimal
    gross_earning: Decimal
    total_gross_earning: Decimal
    ot_rate_per_hour: Decimal
    ot_amount: Decimal
    professional_tax: Decimal
    esic_employee: Decimal
    pf_base: Decimal
    pf_employee: Decimal
    total_deduction: Decimal
    net_salary: Decimal
    esic_employer: Decimal
    pf_employer: Decimal
    mlwf_employer: Decimal
    ctc_per_month: Decimal
    inputs: CompensationInputs

    def as_dict(self) -> Dict[str, Any]:
        out = {k: float(v) for k, v in asdict(self).items() if k != "inputs"}
        out["inputs"] = self.inputs.as_dict()
        return out


# ---------- stages ----------
def _check_period(inputs: CompensationInputs) -> None:
    if inputs.total_days <= 0:
        raise InvalidPeriod("total_days must be greater than zero", payload={"total_days": float(inputs.total_days)})
    if inputs.paid_days <= 0:
        raise InvalidPeriod("paid_days must be greater than zero", payload={"paid_days": float(inputs.paid_days)})
    if inputs.paid_days > inputs.total_days:
        raise InvalidPeriod("paid_days cannot exceed total_days",
                            payload={"total_days": float(inputs.total_days), "paid_days": float(inputs.paid_days)})


def resolve_compensation(inputs: CompensationInputs) -> Tuple[Decimal, Decimal]:
    """Skill amount replaces basic when the employee is skill based and the amount is positive."""
    if inputs.is_skill_based and inputs.skill_amount > 0:
        return inputs.skill_amount, inputs.da
    return inputs.basic, inputs.da


def compute_earnings(effective_basic: Decimal, effective_da: Decimal,
                     inputs: CompensationInputs, config: CalculationConfig) -> Earnings:
    _check_period(inputs)
    hra = round_money((effective_basic + effective_da) * config.hra_percentage / _HUNDRED)
    allowance_total = sum((c.amount for c in inputs.custom_allowances), Decimal("0"))
    gross_rate_pm = effective_basic + effective_da + hra + allowance_total

    gross_earning = round_money(gross_rate_pm * inputs.paid_days / inputs.total_days)

    ot_rate = gross_earning / inputs.paid_days / _HOURS_PER_DAY
    ot_amount = round_money(inputs.single_ot_hours * ot_rate + inputs.double_ot_hours * ot_rate * 2)

    bonus_total = sum((c.amount for c in inputs.custom_bonuses), Decimal("0"))
    total_gross = gross_earning + ot_amount + inputs.difference + bonus_total

    return Earnings(
        hra=hra,
        custom_allowance_total=allowance_total,
        gross_rate_pm=gross_rate_pm,
        gross_earning=gross_earning,
        ot_rate_per_hour=ot_rate.quantize(_CENT, rounding=ROUND_HALF_UP),
        ot_amount=ot_amount,
        custom_bonus_total=bonus_total,
        total_gross_earning=total_gross,
    )


def professional_tax(total_gross_earning: Decimal) -> Decimal:
    if total_gross_earning < PT_MIDDLE_SLAB_FROM:
        return Decimal("0")
    if total_gross_earning <= PT_MIDDLE_SLAB_TO:
        return PT_MIDDLE_AMOUNT
    return PT_TOP_AMOUNT


def compute_deductions(total_gross_earning: Decimal, effective_basic: Decimal, effective_da: Decimal,
                       inputs: CompensationInputs, config: CalculationConfig) -> Deductions:
    _check_period(inputs)
    pt = professional_tax(total_gross_earning)
    esic_employee = round_up_money(total_gross_earning * config.esic_employee_percentage / _HUNDRED)
    pf_base = round_money((effective_basic + effective_da) * inputs.paid_days / inputs.total_days)
    pf_employee = round_money(pf_base * config.pf_employee_percentage / _HUNDRED)
    custom_total = sum((c.amount for c in inputs.custom_deductions), Decimal("0"))

    total = pt + esic_employee + pf_employee + custom_total + inputs.advance
    # net may go negative; callers flag it rather than clamp
    return Deductions(
        professional_tax=pt,
        esic_employee=esic_employee,
        pf_base=pf_base,
        pf_employee=pf_employee,
        custom_deduction_total=custom_total,
        advance=inputs.advance,
        total_deduction=total,
        net_salary=total_gross_earning - total,
    )


def compute_employer_contributions(total_gross_earning: Decimal, pf_base: Decimal,
                                   config: CalculationConfig) -> EmployerContributions:
    esic_employer = round_up_money(total_gross_earning * config.esic_employer_percentage / _HUNDRED)
    pf_employer = round_money(pf_base * config.pf_employer_percentage / _HUNDRED)
    mlwf = config.mlwf_employer_amount
    return EmployerContributions(
        esic_employer=esic_employer,
        pf_employer=pf_employer,
        mlwf_employer=mlwf,
        ctc_per_month=total_gross_earning + esic_employer + pf_employer + mlwf,
    )


def calculate_salary(inputs: CompensationInputs, config: Optional[CalculationConfig] = None) -> SalaryBreakdown:
    cfg = resolve_config(config)
    basic, da = resolve_compensation(inputs)
    earn = compute_earnings(basic, da, inputs, cfg)
    ded = compute_deductions(earn.total_gross_earning, basic, da, inputs, cfg)
    er = compute_employer_contributions(earn.total_gross_earning, ded.pf_base, cfg)
    return SalaryBreakdown(
        effective_basic=basic,
        effective_da=da,
        hra=earn.hra,
        gross_rate_pm=earn.gross_rate_pm,
        gross_earning=earn.gross_earning,
        total_gross_earning=earn.total_gross_earning,
        ot_rate_per_hour=earn.ot_rate_per_hour,
        ot_amount=earn.ot_amount,
        professional_tax=ded.professional_tax,
        esic_employee=ded.esic_employee,
        pf_base=ded.pf_base,
        pf_employee=ded.pf_employee,
        total_deduction=ded.total_deduction,
        net_salary=ded.net_salary,
        esic_employer=er.esic_employer,
        pf_employer=er.pf_employer,
        mlwf_employer=er.mlwf_employer,
        ctc_per_month=er.ctc_per_month,
        inputs=inputs,
    )
