from decimal import Decimal

import pytest

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.common.errors import InvalidCompensationInputs
from payroll_api.models.master import Company
from payroll_api.models.payroll.settings import PayrollSettings
from payroll_api.services.payroll_config import DEFAULT_CONFIG, CalculationConfig, load_config, resolve_config, save_settings


def _mk_app():
    return create_app(SQLALCHEMY_DATABASE_URI="sqlite:///:memory:")


def test_defaults():
    cfg = resolve_config(None)
    assert cfg is DEFAULT_CONFIG
    assert cfg.hra_percentage == Decimal("5")
    assert cfg.esic_employee_percentage == Decimal("0.75")
    assert cfg.esic_employer_percentage == Decimal("3.25")
    assert cfg.pf_employee_percentage == Decimal("12")
    assert cfg.pf_employer_percentage == Decimal("13")
    assert cfg.mlwf_employer_amount == Decimal("1")
    assert cfg.standard_working_days == Decimal("30")


def test_missing_and_blank_fields_fall_back():
    cfg = resolve_config({"hraPercentage": "8", "pf_employee_percentage": "", "mlwf_employer_amount": None})
    assert cfg.hra_percentage == Decimal("8")
    assert cfg.pf_employee_percentage == Decimal("12")
    assert cfg.mlwf_employer_amount == Decimal("1")


def test_config_object_passes_through():
    cfg = CalculationConfig(hra_percentage=Decimal("7"))
    assert resolve_config(cfg) is cfg


@pytest.mark.parametrize("bad", [
    {"hra_percentage": "x"},
    {"esicEmployeePercentage": -1},
    {"hra_percentage": "NaN"},
    {"standardWorkingDays": "Infinity"},
])
def test_bad_values_rejected(bad):
    with pytest.raises(InvalidCompensationInputs):
        resolve_config(bad)


def test_load_and_save_settings():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        c = Company(code="C1", name="C1")
        db.session.add(c); db.session.commit()

        assert load_config(c.id) == DEFAULT_CONFIG

        db.session.add(PayrollSettings(company_id=c.id, hra_percentage=Decimal("6"))); db.session.commit()
        cfg = load_config(c.id)
        assert cfg.hra_percentage == Decimal("6")
        assert cfg.pf_employer_percentage == Decimal("13")

        _, cfg = save_settings(c.id, {"standardWorkingDays": 26, "mlwf_employer_amount": 0}, updated_by="hr")
        assert cfg.standard_working_days == Decimal("26")
        assert cfg.mlwf_employer_amount == Decimal("0")
        # untouched stored value survives
        assert cfg.hra_percentage == Decimal("6")
        row = PayrollSettings.query.filter_by(company_id=c.id).one()
        assert row.updated_by == "hr"
        assert row.standard_working_days == 26

        with pytest.raises(InvalidCompensationInputs):
            save_settings(c.id, {"hra_percentage": "abc"})
        assert load_config(c.id).hra_percentage == Decimal("6")
