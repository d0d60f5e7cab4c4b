from datetime import datetime
from payroll_api.extensions import db


class PayrollSettings(db.Model):
    """Per-company calculation parameters.

    Every rate column is nullable: a NULL means "use the engine default"
    (see services.payroll_config.resolve_config).
    """
    __tablename__ = "payroll_settings"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, unique=True)

    hra_percentage = db.Column(db.Numeric(7, 4))
    esic_employee_percentage = db.Column(db.Numeric(7, 4))
    esic_employer_percentage = db.Column(db.Numeric(7, 4))
    pf_employee_percentage = db.Column(db.Numeric(7, 4))
    pf_employer_percentage = db.Column(db.Numeric(7, 4))
    mlwf_employer_amount = db.Column(db.Numeric(12, 2))
    standard_working_days = db.Column(db.Integer)

    updated_by = db.Column(db.String(64))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = db.relationship("Company", lazy="joined")
