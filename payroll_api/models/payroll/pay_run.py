from datetime import datetime
from payroll_api.extensions import db


class PayRun(db.Model):
    """Period marker. Inserting it is the atomic claim on (company, year, month)."""
    __tablename__ = "pay_runs"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    status = db.Column(db.Enum("processing", "processed", "partial", name="payrun_status_enum"),
                       nullable=False, default="processing")
    totals = db.Column(db.JSON)

    processed_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("company_id", "year", "month", name="uq_pay_run_company_period"),
    )

    company = db.relationship("Company", lazy="joined")


class PayrollRecord(db.Model):
    """Frozen per-employee result of a period run."""
    __tablename__ = "payroll_records"

    id = db.Column(db.Integer, primary_key=True)
    pay_run_id = db.Column(db.Integer, db.ForeignKey("pay_runs.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)

    basic = db.Column(db.Numeric(14, 2), default=0)
    da = db.Column(db.Numeric(14, 2), default=0)
    hra = db.Column(db.Numeric(14, 2), default=0)
    gross_salary = db.Column(db.Numeric(14, 2), default=0)
    total_deduction = db.Column(db.Numeric(14, 2), default=0)
    net_salary = db.Column(db.Numeric(14, 2), default=0)
    tax_amount = db.Column(db.Numeric(14, 2), default=0)

    professional_tax = db.Column(db.Numeric(14, 2), default=0)
    esic_employee = db.Column(db.Numeric(14, 2), default=0)
    pf_employee = db.Column(db.Numeric(14, 2), default=0)
    esic_employer = db.Column(db.Numeric(14, 2), default=0)
    pf_employer = db.Column(db.Numeric(14, 2), default=0)
    mlwf_employer = db.Column(db.Numeric(14, 2), default=0)
    ctc_per_month = db.Column(db.Numeric(14, 2), default=0)

    breakdown = db.Column(db.JSON)        # recomputed breakdown used for this record
    reconciled = db.Column(db.Boolean, default=False)   # stored structure figures took precedence
    remarks = db.Column(db.String(255))

    status = db.Column(db.Enum("pending", "approved", "paid", name="payroll_record_status_enum"),
                       nullable=False, default="pending")
    processed_by = db.Column(db.String(64))
    processed_at = db.Column(db.DateTime, default=datetime.utcnow)
    paid_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "year", "month", name="uq_payroll_record_emp_period"),
    )

    pay_run = db.relationship("PayRun", lazy="joined")
    employee = db.relationship("Employee", lazy="joined")
