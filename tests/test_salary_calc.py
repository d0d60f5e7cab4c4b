from decimal import Decimal

import pytest

from payroll_api.common.errors import InvalidCompensationInputs, InvalidPeriod
from payroll_api.services.payroll_config import CalculationConfig
from payroll_api.services.salary_calc import (
    CompensationInputs, CustomComponent, calculate_salary, professional_tax,
    resolve_compensation, round_money,
)


def _inputs(**kw):
    base = dict(basic=15225, da=775, total_days=30, paid_days=30)
    base.update(kw)
    return CompensationInputs(**base)


def test_full_month_reference_breakdown():
    b = calculate_salary(_inputs())
    assert b.hra == Decimal("800")
    assert b.gross_rate_pm == Decimal("16800")
    assert b.total_gross_earning == Decimal("16800")
    assert b.professional_tax == Decimal("200")
    assert b.esic_employee == Decimal("126")
    assert b.pf_employee == Decimal("1920")
    assert b.total_deduction == Decimal("2246")
    assert b.net_salary == Decimal("14554")


def test_employer_side_and_ctc():
    b = calculate_salary(_inputs())
    assert b.esic_employer == Decimal("546")
    assert b.pf_employer == Decimal("2080")
    assert b.mlwf_employer == Decimal("1")
    assert b.ctc_per_month == b.total_gross_earning + b.esic_employer + b.pf_employer + b.mlwf_employer
    assert b.ctc_per_month == Decimal("19427")


def test_esic_rounds_up_on_both_sides():
    # 1 unit of bonus pushes both ESIC figures just past a whole number
    b = calculate_salary(_inputs(custom_bonuses=[{"label": "Spot", "amount": 1}]))
    assert b.total_gross_earning == Decimal("16801")
    assert b.esic_employee == Decimal("127")
    assert b.esic_employer == Decimal("547")


def test_net_is_gross_minus_deductions_with_all_components():
    b = calculate_salary(_inputs(
        paid_days=26,
        single_ot_hours=4,
        double_ot_hours=2,
        difference=150,
        advance=1000,
        custom_allowances=[CustomComponent("Conveyance", 500)],
        custom_bonuses=[("Performance", 1000)],
        custom_deductions=[{"label": "Canteen", "amount": 300}],
    ))
    assert b.net_salary == b.total_gross_earning - b.total_deduction
    assert b.total_gross_earning == b.gross_earning + b.ot_amount + Decimal("150") + Decimal("1000")
    expected_ded = b.professional_tax + b.esic_employee + b.pf_employee + Decimal("300") + Decimal("1000")
    assert b.total_deduction == expected_ded


def test_proration_and_overtime():
    b = calculate_salary(_inputs(paid_days=15, single_ot_hours=2, double_ot_hours=1))
    # gross 16800 at 15/30
    assert b.gross_earning == Decimal("8400")
    # 8400 / 15 / 8 = 70 per hour; 2*70 + 1*70*2
    assert b.ot_rate_per_hour == Decimal("70.00")
    assert b.ot_amount == Decimal("280")
    assert b.pf_base == Decimal("8000")


def test_custom_allowances_count_towards_gross_rate():
    b = calculate_salary(_inputs(custom_allowances=[("Conveyance", 500), ("Medical", 250)]))
    assert b.gross_rate_pm == Decimal("17550")
    # HRA is on basic + DA only
    assert b.hra == Decimal("800")


def test_skill_amount_replaces_basic():
    inputs = _inputs(basic=15000, da=0, is_skill_based=True, skill_category="Skilled", skill_amount=20000)
    basic, da = resolve_compensation(inputs)
    assert basic == Decimal("20000")
    b = calculate_salary(inputs)
    assert b.effective_basic == Decimal("20000")
    assert b.hra == Decimal("1000")


def test_skill_flag_without_amount_keeps_basic():
    basic, _ = resolve_compensation(_inputs(is_skill_based="yes", skill_amount=0))
    assert basic == Decimal("15225")
    basic, _ = resolve_compensation(_inputs(is_skill_based="false", skill_amount=20000))
    assert basic == Decimal("15225")


@pytest.mark.parametrize("gross, expected", [
    (7500, 0),
    (7501, 175),
    (10000, 175),
    (10001, 200),
    (0, 0),
])
def test_professional_tax_steps(gross, expected):
    assert professional_tax(Decimal(gross)) == Decimal(expected)


def test_round_money_is_half_away_from_zero():
    assert round_money(Decimal("2.5")) == Decimal("3")
    assert round_money(Decimal("-2.5")) == Decimal("-3")
    assert round_money(Decimal("2.49")) == Decimal("2")


@pytest.mark.parametrize("kw", [
    {"total_days": 0},
    {"paid_days": 0},
    {"paid_days": 31},
])
def test_invalid_period_is_rejected(kw):
    with pytest.raises(InvalidPeriod):
        calculate_salary(_inputs(**kw))


def test_negative_net_is_reported_not_clamped():
    b = calculate_salary(_inputs(basic=1000, da=0, advance=5000))
    assert b.net_salary < 0
    assert b.net_salary == b.total_gross_earning - b.total_deduction


def test_same_inputs_same_result():
    cfg = CalculationConfig(hra_percentage=Decimal("10"))
    a = calculate_salary(_inputs(single_ot_hours=3), cfg)
    b = calculate_salary(_inputs(single_ot_hours=3), cfg)
    assert a == b
    assert a.hra == Decimal("1600")


def test_config_changes_rates():
    cfg = CalculationConfig(pf_employee_percentage=Decimal("10"), mlwf_employer_amount=Decimal("0"))
    b = calculate_salary(_inputs(), cfg)
    assert b.pf_employee == Decimal("1600")
    assert b.mlwf_employer == Decimal("0")


def test_component_validation():
    with pytest.raises(InvalidCompensationInputs):
        CustomComponent("  ", 100)
    with pytest.raises(InvalidCompensationInputs):
        CustomComponent("Medical", -1)
    with pytest.raises(InvalidCompensationInputs):
        CustomComponent("Medical", "abc")
    with pytest.raises(InvalidCompensationInputs):
        _inputs(custom_allowances=[("Medical", 100), ("medical", 200)])


def test_non_numeric_input_is_rejected():
    with pytest.raises(InvalidCompensationInputs):
        _inputs(basic="lots")


def test_from_mapping_accepts_camel_case_and_keeps_base():
    base = _inputs(advance=500)
    inp = CompensationInputs.from_mapping({"paidDays": 20, "customBonuses": [{"label": "Diwali", "amount": 2000}]}, base=base)
    assert inp.paid_days == Decimal("20")
    assert inp.advance == Decimal("500")
    assert inp.basic == Decimal("15225")
    assert inp.custom_bonuses[0].label == "Diwali"


def test_breakdown_as_dict_is_json_friendly():
    d = calculate_salary(_inputs(custom_allowances=[("Medical", 250)])).as_dict()
    assert d["net_salary"] == 14802.0
    assert d["inputs"]["custom_allowances"] == [{"label": "Medical", "amount": 250.0}]
    assert all(isinstance(v, float) for k, v in d.items() if k != "inputs")


@pytest.mark.parametrize("field", ["basic", "total_days", "paid_days"])
@pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", Decimal("NaN"), float("inf")])
def test_non_finite_input_is_rejected(field, value):
    with pytest.raises(InvalidCompensationInputs):
        _inputs(**{field: value})


def test_non_finite_component_amount_is_rejected():
    with pytest.raises(InvalidCompensationInputs):
        CustomComponent("Medical", "NaN")
    with pytest.raises(InvalidCompensationInputs):
        _inputs(custom_bonuses=[{"label": "Spot", "amount": "Infinity"}])


@pytest.mark.parametrize("entry", ["a5", b"a5", "Medical"])
def test_string_component_entries_are_rejected(entry):
    with pytest.raises(InvalidCompensationInputs):
        _inputs(custom_allowances=[entry])
