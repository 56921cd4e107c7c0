"""
Amortization Calculator

Fixed-payment (annuity) repayment schedules. Runs once at loan origination
to seed the installment schedule; the periodic engine never calls it.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from .late_fees import round_money


@dataclass(frozen=True)
class ScheduledInstallment:
    """Single entry in an amortization schedule"""
    month: int
    due_date: date
    amount_due: Decimal
    principal_component: Decimal
    interest_component: Decimal
    remaining_balance: Decimal


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Annual percentage rate to periodic monthly rate (15 -> 0.0125)"""
    return Decimal(annual_rate) / Decimal('100') / Decimal('12')


def _validate(principal: Decimal, annual_rate: Decimal, term_months: int) -> None:
    if principal <= 0:
        raise ValueError("Principal must be positive")
    if annual_rate < 0:
        raise ValueError("Interest rate cannot be negative")
    if term_months < 1:
        raise ValueError("Term must be at least one month")


def calculate_monthly_payment(principal: Decimal, annual_rate: Decimal, term_months: int) -> Decimal:
    """
    Fixed monthly payment M = P * i * (1+i)^n / ((1+i)^n - 1)
    
    A zero rate falls back to equal division P / n.
    """
    principal = Decimal(principal)
    annual_rate = Decimal(annual_rate)
    _validate(principal, annual_rate, term_months)
    
    i = monthly_rate(annual_rate)
    if i == 0:
        return round_money(principal / Decimal(term_months))
    
    factor = (Decimal('1') + i) ** term_months
    return round_money(principal * i * factor / (factor - Decimal('1')))


def build_schedule(
    principal: Decimal,
    annual_rate: Decimal,
    term_months: int,
    start_date: date
) -> List[ScheduledInstallment]:
    """
    Build the repayment schedule for a fixed-payment loan.
    
    Args:
        principal: Amount lent
        annual_rate: Nominal annual rate in percent
        term_months: Number of monthly installments
        start_date: Disbursement date; installment k is due start + k months
        
    Returns:
        term_months installments, each with the same amount_due
    """
    principal = Decimal(principal)
    annual_rate = Decimal(annual_rate)
    payment = calculate_monthly_payment(principal, annual_rate, term_months)
    i = monthly_rate(annual_rate)
    
    schedule = []
    remaining = principal
    for month in range(1, term_months + 1):
        interest = round_money(remaining * i)
        principal_part = payment - interest
        remaining = round_money(remaining - principal_part)
        
        schedule.append(ScheduledInstallment(
            month=month,
            due_date=add_months(start_date, month),
            amount_due=payment,
            principal_component=principal_part,
            interest_component=interest,
            remaining_balance=max(remaining, Decimal('0.00'))
        ))
    
    return schedule
