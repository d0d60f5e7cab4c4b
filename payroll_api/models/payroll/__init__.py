# payroll_api/models/payroll/__init__.py
# Import order matters: settings and structures first, then pay_run (records reference employees).
from payroll_api.extensions import db  # noqa

from .settings import PayrollSettings
from .salary_structure import EmployeeSalaryStructure
from .pay_run import PayRun, PayrollRecord

__all__ = [
    "PayrollSettings", "EmployeeSalaryStructure",
    "PayRun", "PayrollRecord",
]
