"""
Lending Engine

Multi-tenant loan ledger with an automation engine that reconciles repayment
schedules, accrues late fees, resolves loan status and opens collection cases.
All monetary values use Decimal precision.
"""

__version__ = "1.0.0"
