"""
Pydantic schemas for API requests and response serialization
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..collections import CollectionCase
from ..loans import Installment, Loan


# Tenant schemas
class CreateTenantRequest(BaseModel):
    name: str
    code: str
    display_name: Optional[str] = None
    description: str = ""
    contact_email: Optional[str] = None


class LoanSettingsUpdate(BaseModel):
    default_interest_rate: Optional[str] = Field(None, description="Annual percent as string")
    grace_period_days: Optional[int] = Field(None, ge=0)
    late_fee_rate: Optional[str] = Field(None, description="Percent per 30 days overdue")
    max_late_fee_rate: Optional[str] = None
    min_loan_amount: Optional[str] = None
    max_loan_amount: Optional[str] = None
    default_loan_duration: Optional[int] = Field(None, ge=1)
    interest_calculation_method: Optional[str] = None
    auto_approve_below: Optional[int] = Field(None, ge=0, le=100)
    auto_reject_at_or_above: Optional[int] = Field(None, ge=0, le=100)


# Loan schemas
class LoanApplicationRequest(BaseModel):
    customer_id: str
    principal: str = Field(..., description="Decimal amount as string")
    annual_interest_rate: Optional[str] = Field(None, description="Defaults to tenant setting")
    term_months: Optional[int] = Field(None, ge=1)
    officer_id: Optional[str] = None
    loan_type: str = "personal"
    risk_score: Optional[int] = Field(None, ge=0, le=100)
    collateral_included: bool = False


class CreateLoanRequest(LoanApplicationRequest):
    start_date: Optional[date] = None


class DisburseLoanRequest(BaseModel):
    disbursement_date: Optional[date] = None


class RepaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    paid_at: Optional[datetime] = None


# Collections schemas
class CollectionNoteRequest(BaseModel):
    text: str = Field(..., min_length=1)
    author: str


class AssignCaseRequest(BaseModel):
    assignee: str


class CaseStatusRequest(BaseModel):
    status: str


def to_json(value: Any) -> Any:
    """Convert Decimals, dates and enums to JSON-friendly values"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value


def loan_response(loan: Loan) -> dict:
    return {
        "id": loan.id,
        "tenant_id": loan.tenant_id,
        "customer_id": loan.customer_id,
        "officer_id": loan.officer_id,
        "principal": str(loan.principal),
        "annual_interest_rate": str(loan.annual_interest_rate),
        "term_months": loan.term_months,
        "loan_type": loan.loan_type,
        "start_date": loan.start_date.isoformat(),
        "status": loan.status.value,
        "status_reason": loan.status_reason,
        "risk_score": loan.risk_score,
        "collateral_included": loan.collateral_included,
        "auto_processed": loan.auto_processed,
        "is_deleted": loan.is_deleted
    }


def installment_response(installment: Installment) -> dict:
    return {
        "id": installment.id,
        "month": installment.month,
        "due_date": installment.due_date.isoformat(),
        "amount_due": str(installment.amount_due),
        "principal_component": str(installment.principal_component),
        "interest_component": str(installment.interest_component),
        "remaining_balance": str(installment.remaining_balance),
        "amount_paid": str(installment.amount_paid),
        "late_fee": str(installment.late_fee),
        "status": installment.status.value,
        "days_overdue": installment.days_overdue,
        "paid_at": installment.paid_at.isoformat() if installment.paid_at else None
    }


def case_response(case: CollectionCase) -> dict:
    return to_json(case.to_dict())
