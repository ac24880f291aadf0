import pytest

from hr_overtime.config import Settings
from hr_overtime.cost import CostConfig, base_hour_rate, compute_cost, format_currency
from hr_overtime.models import HoursBreakdown


def test_base_hour_rate_uses_monthly_hours():
    assert base_hour_rate(2200) == 10
    assert base_hour_rate(2200, CostConfig(monthly_hours=200)) == 11


def test_scenario_a_cost():
    hours = HoursBreakdown(total=2, h50=2)

    assert compute_cost(hours, 2200) == 30.00


def test_night_differential_is_added_on_top():
    hours = HoursBreakdown(total=2, h50=2, h_night=1.5)

    assert compute_cost(hours, 2200) == 33.00


def test_hundred_percent_rate():
    hours = HoursBreakdown(total=2, h100=2)

    assert compute_cost(hours, 2200) == 40.00


@pytest.mark.parametrize("salary", [None, 0, -100])
def test_no_salary_costs_nothing(salary):
    assert compute_cost(HoursBreakdown(total=2, h50=2), salary) == 0


def test_cost_is_rounded_once():
    hours = HoursBreakdown(total=1.33, h50=1.33, h_night=0.67)
    rate = 1001 / 220

    expected = round(0.67 * rate * 0.2 + 1.33 * rate * 1.5, 2)

    assert compute_cost(hours, 1001) == expected


def test_config_from_settings():
    settings = Settings(monthly_hours=200, rate50=1.6, rate100=2.5, night_extra_rate=0.25)

    config = CostConfig.from_settings(settings)

    assert config == CostConfig(monthly_hours=200, rate50=1.6, rate100=2.5, night_extra_rate=0.25)


def test_format_currency():
    assert format_currency(1234.56) == "R$ 1.234,56"
    assert format_currency(30) == "R$ 30,00"
    assert format_currency(0) == "—"
