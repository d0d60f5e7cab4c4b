from datetime import datetime
from payroll_api.extensions import db


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False)

    code  = db.Column(db.String(32), nullable=False)    # unique per company ("employeeId" in imports)
    email = db.Column(db.String(255), unique=True, nullable=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name  = db.Column(db.String(80), nullable=True)

    # statutory registration numbers, carried unchanged by imports
    esic_number = db.Column(db.String(32), nullable=True)
    uan_number  = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), default="active", nullable=False)  # active/inactive
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_employee_company_code"),
        db.Index("ix_emp_company_id", "company_id"),
    )

    company = db.relationship("Company", lazy="joined")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in [(self.first_name or "").strip(), (self.last_name or "").strip()] if p)
