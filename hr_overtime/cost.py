from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import HoursBreakdown


@dataclass(frozen=True)
class CostConfig:
    monthly_hours: float = 220
    rate50: float = 1.5
    rate100: float = 2.0
    night_extra_rate: float = 0.2

    @classmethod
    def from_settings(cls, settings) -> "CostConfig":
        return cls(
            monthly_hours=settings.monthly_hours,
            rate50=settings.rate50,
            rate100=settings.rate100,
            night_extra_rate=settings.night_extra_rate,
        )


DEFAULT_COST_CONFIG = CostConfig()


def base_hour_rate(monthly_salary: Optional[float], config: CostConfig = DEFAULT_COST_CONFIG) -> float:
    if not monthly_salary or monthly_salary <= 0 or config.monthly_hours <= 0:
        return 0.0
    return float(monthly_salary) / config.monthly_hours


def compute_cost(
    hours: HoursBreakdown,
    monthly_salary: Optional[float],
    config: CostConfig = DEFAULT_COST_CONFIG,
) -> float:
    """Estimated cost of the hours; 0 when no salary is on file.

    Night hours add their differential on top of the 50%/100% bucket.
    Rounded once, on the final sum.
    """
    rate = base_hour_rate(monthly_salary, config)
    if not rate:
        return 0.0
    night = hours.h_night * rate * config.night_extra_rate
    fifty = hours.h50 * rate * config.rate50
    hundred = hours.h100 * rate * config.rate100
    return round(night + fifty + hundred, 2)


def format_currency(value: float) -> str:
    if not value or value <= 0:
        return "—"
    formatted = f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"R$ {formatted}"
