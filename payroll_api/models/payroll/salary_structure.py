from datetime import datetime
from payroll_api.extensions import db


class EmployeeSalaryStructure(db.Model):
    """The employee's current structure snapshot: last inputs plus the breakdown derived from them."""
    __tablename__ = "employee_salary_structures"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, unique=True)

    # inputs
    basic = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    da = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_days = db.Column(db.Numeric(6, 2), nullable=False, default=30)
    paid_days = db.Column(db.Numeric(6, 2), nullable=False, default=30)
    single_ot_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    double_ot_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    difference = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    advance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    is_skill_based = db.Column(db.Boolean, nullable=False, default=False)
    skill_category = db.Column(db.String(60))
    skill_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    custom_allowances = db.Column(db.JSON)   # [{"label": ..., "amount": ...}]
    custom_bonuses = db.Column(db.JSON)
    custom_deductions = db.Column(db.JSON)
    tax_regime = db.Column(db.Enum("old", "new", name="tax_regime_enum"), nullable=False, default="old")

    # derived snapshot (full SalaryBreakdown as dict)
    breakdown = db.Column(db.JSON)

    # precomputed figures honoured by payroll runs when non-zero
    gross_salary = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_salary = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    updated_by = db.Column(db.String(64))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined",
                               backref=db.backref("salary_structure", uselist=False))
