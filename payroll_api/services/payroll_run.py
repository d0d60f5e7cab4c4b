"""
Period payroll runs.

A run for (company, month, year) first claims the period by inserting a
PayRun row; a unique constraint makes that claim succeed for exactly one
caller. Each employee's breakdown is then recalculated on a bounded worker
pool, reconciled against the figures stored on the employee's structure, and
written as one PayrollRecord (status "pending"), committed per employee.

There is no way back from a processed period here: undoing a run means
deleting its records and PayRun row out of band.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from payroll_api.extensions import db
from payroll_api.common.errors import (
    APIError, InvalidCompensationInputs, InvalidPeriod, InvalidStatusTransition,
    PartialRunFailure, PeriodAlreadyProcessed,
)
from payroll_api.models.employee import Employee
from payroll_api.models.payroll.pay_run import PayRun, PayrollRecord
from payroll_api.services.payroll_common import OperationSummary, get_pay_run_for_period, run_bounded
from payroll_api.services.payroll_config import CalculationConfig, load_config
from payroll_api.services.salary_calc import CompensationInputs, SalaryBreakdown, calculate_salary
from payroll_api.services.structure_service import inputs_from_structure
from payroll_api.services.tax_estimator import DEFAULT_REGIME, estimate_tax, parse_regime

log = logging.getLogger(__name__)

_ZERO = Decimal("0")

RECORD_TRANSITIONS = {
    "pending": ("approved",),
    "approved": ("paid",),
    "paid": (),
}


# ---------- pure part (runs on worker threads) ----------
@dataclass(frozen=True)
class StructureSnapshot:
    """Plain copy of an employee's structure, detached from the session."""
    employee_id: int
    inputs: Optional[CompensationInputs]
    tax_regime: str = DEFAULT_REGIME.value
    gross_salary: Decimal = _ZERO
    net_salary: Decimal = _ZERO
    tax_amount: Decimal = _ZERO


@dataclass(frozen=True)
class ReconciledPay:
    breakdown: SalaryBreakdown
    gross_salary: Decimal
    net_salary: Decimal
    tax_amount: Decimal
    reconciled: bool
    remarks: Optional[str] = None


def reconcile(breakdown: SalaryBreakdown, stored_gross: Decimal, stored_net: Decimal,
              stored_tax: Decimal, tax_regime: str) -> ReconciledPay:
    """
    Stored non-zero gross/net/tax win over recomputed figures. The recomputed
    total deduction only cross-checks the stored pair. Tax is estimated only
    when no stored amount exists.
    """
    gross = stored_gross if stored_gross else breakdown.total_gross_earning
    net = stored_net if stored_net else breakdown.net_salary
    remarks = None
    if stored_gross and stored_net and (stored_gross - stored_net) != breakdown.total_deduction:
        remarks = (f"stored deductions {stored_gross - stored_net} differ from "
                   f"recomputed {breakdown.total_deduction}")
    tax = stored_tax if stored_tax else estimate_tax(gross, tax_regime)
    return ReconciledPay(
        breakdown=breakdown,
        gross_salary=gross,
        net_salary=net,
        tax_amount=tax,
        reconciled=bool(stored_gross or stored_net),
        remarks=remarks,
    )


def compute_employee(snap: StructureSnapshot, config: CalculationConfig) -> ReconciledPay:
    if snap.inputs is None:
        raise InvalidCompensationInputs("employee has no salary structure")
    breakdown = calculate_salary(snap.inputs, config)
    return reconcile(breakdown, snap.gross_salary, snap.net_salary, snap.tax_amount, snap.tax_regime)


# ---------- summary ----------
@dataclass
class RunSummary(OperationSummary):
    run_id: Optional[int] = None
    company_id: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None
    totals: Dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        out = super().as_dict()
        out.update({
            "run_id": self.run_id, "company_id": self.company_id,
            "month": self.month, "year": self.year, "totals": self.totals,
        })
        return out

    def raise_for_failures(self) -> "RunSummary":
        if self.failed:
            raise PartialRunFailure(
                f"{len(self.failed)} employee(s) failed for {self.month:02d}/{self.year}",
                payload=self.as_dict(),
            )
        return self


def _check_period(month: Any, year: Any) -> tuple:
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        raise InvalidPeriod("month and year must be integers")
    if not 1 <= month <= 12:
        raise InvalidPeriod("month must be between 1 and 12", payload={"month": month})
    if year < 1900:
        raise InvalidPeriod("year is out of range", payload={"year": year})
    return month, year


# ---------- coordinator ----------
class PayrollRunCoordinator:
    def __init__(self, company_id: int, processed_by: Optional[str] = None,
                 max_workers: int = 4, cancel_event: Optional[threading.Event] = None):
        self.company_id = company_id
        self.processed_by = processed_by
        self.max_workers = max_workers
        self.cancel_event = cancel_event

    def process(self, month, year) -> RunSummary:
        """Run the period once. Raises PeriodAlreadyProcessed before any write if it was run."""
        month, year = _check_period(month, year)
        self._guard(month, year)
        run = self._claim(month, year)
        return self._run(run, self._employees())

    def retry(self, month, year, employee_ids: Optional[Iterable[int]] = None) -> RunSummary:
        """Complete a claimed period for employees that still have no record."""
        month, year = _check_period(month, year)
        run = get_pay_run_for_period(self.company_id, year, month)
        if run is None:
            raise InvalidPeriod(f"{month:02d}/{year} has not been processed; nothing to retry")
        written = {r.employee_id for r in PayrollRecord.query.filter_by(pay_run_id=run.id).all()}
        wanted = set(employee_ids) if employee_ids is not None else None
        todo = [e for e in self._employees()
                if e.id not in written and (wanted is None or e.id in wanted)]
        return self._run(run, todo)

    # -- steps --
    def _guard(self, month: int, year: int) -> None:
        exists = (PayrollRecord.query
                  .filter_by(company_id=self.company_id, year=year, month=month)
                  .first())
        if exists is not None:
            raise PeriodAlreadyProcessed(f"payroll for {month:02d}/{year} is already processed",
                                         payload={"month": month, "year": year})

    def _claim(self, month: int, year: int) -> PayRun:
        run = PayRun(company_id=self.company_id, year=year, month=month,
                     status="processing", processed_by=self.processed_by)
        db.session.add(run)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise PeriodAlreadyProcessed(f"payroll for {month:02d}/{year} is already processed",
                                         payload={"month": month, "year": year})
        log.info("claimed payroll period %02d/%s for company %s (run %s)", month, year, self.company_id, run.id)
        return run

    def _employees(self) -> List[Employee]:
        return (Employee.query
                .filter(Employee.company_id == self.company_id, Employee.status != "inactive")
                .order_by(Employee.id.asc())
                .all())

    @staticmethod
    def _snapshot(emp: Employee) -> StructureSnapshot:
        s = emp.salary_structure
        if s is None:
            return StructureSnapshot(employee_id=emp.id, inputs=None)
        try:
            inputs = inputs_from_structure(s)
            regime = parse_regime(s.tax_regime, default=DEFAULT_REGIME).value
        except APIError as e:
            log.warning("employee %s: stored structure unusable: %s", emp.id, e.message)
            inputs, regime = None, DEFAULT_REGIME.value
        return StructureSnapshot(
            employee_id=emp.id,
            inputs=inputs,
            tax_regime=regime,
            gross_salary=Decimal(str(s.gross_salary or 0)),
            net_salary=Decimal(str(s.net_salary or 0)),
            tax_amount=Decimal(str(s.tax_amount or 0)),
        )

    def _run(self, run: PayRun, employees: List[Employee]) -> RunSummary:
        cfg = load_config(self.company_id)
        snaps = [(e.id, self._snapshot(e)) for e in employees]
        result = run_bounded(lambda snap: compute_employee(snap, cfg), snaps,
                             max_workers=self.max_workers, cancel_event=self.cancel_event)

        summary = RunSummary(run_id=run.id, company_id=self.company_id, month=run.month, year=run.year)
        tot_gross = tot_net = tot_tax = _ZERO
        for emp_id, _ in snaps:
            if emp_id in result.cancelled or (self.cancel_event is not None and self.cancel_event.is_set()):
                summary.cancelled.append(emp_id)
                continue
            if emp_id in result.errors:
                err = result.errors[emp_id]
                log.warning("payroll %02d/%s: employee %s failed: %s", run.month, run.year, emp_id, err)
                summary.fail(emp_id, err)
                continue
            pay: ReconciledPay = result.done[emp_id]
            if pay.remarks:
                log.warning("payroll %02d/%s: employee %s reconciliation: %s", run.month, run.year, emp_id, pay.remarks)
            db.session.add(self._record(run, emp_id, pay))
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                summary.skip(emp_id, "record already exists")
                continue
            summary.succeeded.append(emp_id)
            tot_gross += pay.gross_salary
            tot_net += pay.net_salary
            tot_tax += pay.tax_amount

        summary.totals = {"gross": float(tot_gross), "net": float(tot_net), "tax": float(tot_tax)}
        run = db.session.get(PayRun, summary.run_id)
        written = PayrollRecord.query.filter_by(pay_run_id=run.id).count()
        run.status = "processed" if written >= len(self._employees()) and not summary.failed else "partial"
        run.totals = {**summary.counts(), **summary.totals, "records": written}
        run.completed_at = datetime.utcnow()
        db.session.commit()
        log.info("payroll %02d/%s for company %s: %s", run.month, run.year, self.company_id, summary.counts())
        return summary

    def _record(self, run: PayRun, employee_id: int, pay: ReconciledPay) -> PayrollRecord:
        b = pay.breakdown
        return PayrollRecord(
            pay_run_id=run.id,
            company_id=self.company_id,
            employee_id=employee_id,
            year=run.year,
            month=run.month,
            basic=b.effective_basic,
            da=b.effective_da,
            hra=b.hra,
            gross_salary=pay.gross_salary,
            total_deduction=b.total_deduction,
            net_salary=pay.net_salary,
            tax_amount=pay.tax_amount,
            professional_tax=b.professional_tax,
            esic_employee=b.esic_employee,
            pf_employee=b.pf_employee,
            esic_employer=b.esic_employer,
            pf_employer=b.pf_employer,
            mlwf_employer=b.mlwf_employer,
            ctc_per_month=b.ctc_per_month,
            breakdown=b.as_dict(),
            reconciled=pay.reconciled,
            remarks=pay.remarks,
            status="pending",
            processed_by=self.processed_by,
            processed_at=datetime.utcnow(),
        )


# ---------- records ----------
def record_row(r: PayrollRecord) -> Dict[str, Any]:
    money = ("basic", "da", "hra", "gross_salary", "total_deduction", "net_salary", "tax_amount",
             "professional_tax", "esic_employee", "pf_employee", "esic_employer", "pf_employer",
             "mlwf_employer", "ctc_per_month")
    out = {
        "id": r.id,
        "pay_run_id": r.pay_run_id,
        "employee_id": r.employee_id,
        "month": r.month,
        "year": r.year,
        "status": r.status,
        "reconciled": bool(r.reconciled),
        "remarks": r.remarks,
        "processed_by": r.processed_by,
        "processed_at": r.processed_at.isoformat() if r.processed_at else None,
        "paid_at": r.paid_at.isoformat() if r.paid_at else None,
    }
    out.update({k: float(getattr(r, k) or 0) for k in money})
    return out


def set_record_status(record_id: int, status: str) -> PayrollRecord:
    rec = db.session.get(PayrollRecord, record_id)
    if rec is None:
        raise APIError("NOT_FOUND", f"payroll record {record_id} not found", 404)
    status = (status or "").strip().lower()
    allowed = RECORD_TRANSITIONS.get(rec.status, ())
    if status not in allowed:
        raise InvalidStatusTransition(
            f"record in status '{rec.status}' cannot move to '{status}'",
            payload={"allowed": list(allowed)},
        )
    rec.status = status
    if status == "paid":
        rec.paid_at = datetime.utcnow()
    db.session.commit()
    return rec


def period_summary(company_id: int, month, year) -> Dict[str, Any]:
    month, year = _check_period(month, year)
    run = get_pay_run_for_period(company_id, year, month)
    headcount = (Employee.query
                 .filter(Employee.company_id == company_id, Employee.status != "inactive")
                 .count())
    base = db.session.query(PayrollRecord).filter(
        PayrollRecord.company_id == company_id,
        PayrollRecord.year == year,
        PayrollRecord.month == month,
    )
    count, gross, net, tax = base.with_entities(
        func.count(PayrollRecord.id),
        func.coalesce(func.sum(PayrollRecord.gross_salary), 0),
        func.coalesce(func.sum(PayrollRecord.net_salary), 0),
        func.coalesce(func.sum(PayrollRecord.tax_amount), 0),
    ).one()
    by_status = dict(base.with_entities(PayrollRecord.status, func.count(PayrollRecord.id))
                     .group_by(PayrollRecord.status).all())
    return {
        "company_id": company_id,
        "month": month,
        "year": year,
        "claimed": run is not None,
        "run_status": run.status if run else None,
        "total_employees": headcount,
        "processed_records": int(count or 0),
        "total_gross_salary": float(gross or 0),
        "total_net_salary": float(net or 0),
        "total_tax": float(tax or 0),
        "by_status": {s: int(by_status.get(s, 0)) for s in RECORD_TRANSITIONS},
    }
