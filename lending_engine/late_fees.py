"""
Late-Fee Policy

Maps an overdue amount and its age in days to a late fee. The fee is a
replacement value: each run recomputes it from the current days overdue and
overwrites the installment's late_fee, it is never added to a running total.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')
DAYS_PER_FEE_PERIOD = Decimal('30')


@dataclass(frozen=True)
class LateFeeConfig:
    """Late fee parameters; rates are percentages (2.5 means 2.5%)"""
    grace_period_days: int = 7
    late_fee_rate: Decimal = Decimal('2.5')      # Percent per 30 days past grace
    max_late_fee_rate: Decimal = Decimal('25')   # Cap, percent of overdue amount
    
    def __post_init__(self):
        if self.grace_period_days < 0:
            raise ValueError("grace_period_days cannot be negative")
        if self.late_fee_rate < 0 or self.max_late_fee_rate < 0:
            raise ValueError("late fee rates cannot be negative")


def round_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def late_fee_rate_for(days_overdue: int, config: LateFeeConfig) -> Decimal:
    """Fractional fee rate (0.0275 for 2.75%) for the given days overdue"""
    if days_overdue <= config.grace_period_days:
        return Decimal('0')
    
    effective_days = Decimal(days_overdue - config.grace_period_days)
    months_overdue = effective_days / DAYS_PER_FEE_PERIOD
    rate = config.late_fee_rate / Decimal('100') * months_overdue
    cap = config.max_late_fee_rate / Decimal('100')
    return min(rate, cap)


def calculate_late_fee(overdue_amount: Decimal, days_overdue: int, config: LateFeeConfig) -> Decimal:
    """
    Calculate the late fee for an overdue amount.
    
    Args:
        overdue_amount: Outstanding principal plus interest of the installment
        days_overdue: Whole days past the due date
        config: Tenant late fee configuration
        
    Returns:
        Fee rounded to cents, zero within the grace period
    """
    if overdue_amount <= 0:
        return Decimal('0.00')
    rate = late_fee_rate_for(days_overdue, config)
    return round_money(Decimal(overdue_amount) * rate)
