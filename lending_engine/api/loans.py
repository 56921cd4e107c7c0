"""
Loan endpoints
"""

from decimal import Decimal, InvalidOperation
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .schemas import (
    CreateLoanRequest, DisburseLoanRequest, LoanApplicationRequest, RepaymentRequest,
    installment_response, loan_response, to_json
)
from .system import LendingSystem, get_lending_system, valid_tenant
from ..loans import LoanStatus


router = APIRouter()


def _decimal(value: Optional[str], name: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise HTTPException(status_code=422, detail=f"{name} must be a decimal string")


@router.post("", status_code=status.HTTP_201_CREATED)
async def originate_loan(
    request: CreateLoanRequest,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Book a loan and generate its repayment schedule"""
    loan = system.loan_manager.originate_loan(
        tenant_id=tenant_id,
        customer_id=request.customer_id,
        principal=_decimal(request.principal, "principal"),
        annual_interest_rate=_decimal(request.annual_interest_rate, "annual_interest_rate"),
        term_months=request.term_months,
        start_date=request.start_date,
        officer_id=request.officer_id,
        loan_type=request.loan_type,
        risk_score=request.risk_score,
        collateral_included=request.collateral_included
    )
    installments = system.loan_manager.get_installments(loan.id)
    return {
        "loan_id": loan.id,
        "status": loan.status.value,
        "monthly_payment": str(installments[0].amount_due),
        "installments": len(installments),
        "message": "Loan originated successfully"
    }


@router.post("/applications", status_code=status.HTTP_201_CREATED)
async def submit_application(
    request: LoanApplicationRequest,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Submit an application for risk-based decisioning"""
    loan = system.loan_manager.submit_application(
        tenant_id=tenant_id,
        customer_id=request.customer_id,
        principal=_decimal(request.principal, "principal"),
        annual_interest_rate=_decimal(request.annual_interest_rate, "annual_interest_rate"),
        term_months=request.term_months,
        officer_id=request.officer_id,
        loan_type=request.loan_type,
        risk_score=request.risk_score,
        collateral_included=request.collateral_included
    )
    return {
        "loan_id": loan.id,
        "status": loan.status.value,
        "message": "Application submitted successfully"
    }


@router.get("")
async def list_loans(
    status_filter: Optional[str] = Query(None, alias="status"),
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """List a tenant's loans, optionally by status"""
    statuses = None
    if status_filter:
        try:
            statuses = [LoanStatus(status_filter)]
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown loan status: {status_filter}")
    loans = system.loan_manager.list_loans(tenant_id, statuses)
    return {"loans": [loan_response(loan) for loan in loans]}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details with balance summary"""
    loan = system.loan_manager.get_loan(loan_id, tenant_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    
    result = loan_response(loan)
    result["balance"] = to_json(system.loan_manager.get_balance_summary(loan.id))
    return result


@router.get("/{loan_id}/installments")
async def get_installments(
    loan_id: str,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get the repayment schedule"""
    loan = system.loan_manager.require_loan(tenant_id, loan_id)
    return {
        "loan_id": loan.id,
        "installments": [installment_response(i) for i in system.loan_manager.get_installments(loan.id)]
    }


@router.post("/{loan_id}/disburse")
async def disburse_loan(
    loan_id: str,
    request: DisburseLoanRequest,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Disburse an approved application"""
    loan = system.loan_manager.disburse_loan(tenant_id, loan_id, request.disbursement_date)
    return {
        "loan_id": loan.id,
        "status": loan.status.value,
        "start_date": loan.start_date.isoformat(),
        "message": "Loan disbursed successfully"
    }


@router.post("/{loan_id}/payments")
async def record_payment(
    loan_id: str,
    request: RepaymentRequest,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Record a repayment and re-resolve the loan status"""
    result = system.loan_manager.record_payment(
        tenant_id, loan_id, _decimal(request.amount, "amount"), request.paid_at
    )
    refreshed = system.engine.refresh_loan(tenant_id, loan_id)
    response = to_json(result)
    response["loan_status"] = refreshed.new_status.value
    response["message"] = "Payment recorded successfully"
    return response


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Soft delete a loan"""
    loan = system.loan_manager.soft_delete_loan(tenant_id, loan_id)
    return {"loan_id": loan.id, "message": "Loan deleted successfully"}
