"""
Loan Status Resolver

The single place where automation changes a loan's status. The new status
is recomputed from the persisted status and the loan's installments every
time, so resolving twice gives the same answer.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .audit import AuditEventType
from .effects import AuditEntry, Effects, NullEffects
from .loans import Installment, InstallmentStatus, Loan, LoanManager, LoanStatus
from .logging_config import get_logger

# Simultaneous overdue installments that mean default regardless of pending ones
DEFAULT_OVERDUE_THRESHOLD = 3

REASON_COMPLETED = "all_repayments_completed"
REASON_DEFAULTED = "default_threshold_reached"
REASON_OVERDUE = "overdue_repayments"
REASON_STARTED = "schedule_started"

logger = get_logger("lending.status")


@dataclass(frozen=True)
class InstallmentSummary:
    """Aggregate facts about a loan's installments"""
    count: int
    all_paid: bool
    has_overdue: bool
    has_pending: bool
    overdue_count: int
    total_due: Decimal
    total_paid: Decimal
    overdue_amount: Decimal
    
    @classmethod
    def of(cls, installments: List[Installment]) -> 'InstallmentSummary':
        overdue = [i for i in installments if i.status == InstallmentStatus.OVERDUE]
        return cls(
            count=len(installments),
            all_paid=bool(installments) and all(
                i.status == InstallmentStatus.PAID and i.amount_paid >= i.amount_due
                for i in installments
            ),
            has_overdue=bool(overdue),
            has_pending=any(i.status == InstallmentStatus.PENDING for i in installments),
            overdue_count=len(overdue),
            total_due=sum((i.amount_due for i in installments), Decimal('0.00')),
            total_paid=sum((i.amount_paid for i in installments), Decimal('0.00')),
            overdue_amount=sum((i.outstanding for i in overdue), Decimal('0.00'))
        )


@dataclass(frozen=True)
class StatusDecision:
    status: LoanStatus
    reason: Optional[str]
    summary: InstallmentSummary


def resolve_loan_status(current: LoanStatus, installments: List[Installment]) -> StatusDecision:
    """
    Derive a loan's status from its installments; first matching rule wins
    
    1. everything paid and covered -> completed
    2. overdue and (3+ overdue or nothing left pending) -> defaulted
    3. overdue and not yet active -> active
    4. pending with a schedule -> active
    5. otherwise unchanged
    """
    summary = InstallmentSummary.of(installments)
    
    if summary.all_paid and summary.total_paid >= summary.total_due:
        return StatusDecision(LoanStatus.COMPLETED, REASON_COMPLETED, summary)
    
    if summary.has_overdue and (
        summary.overdue_count >= DEFAULT_OVERDUE_THRESHOLD or not summary.has_pending
    ):
        return StatusDecision(LoanStatus.DEFAULTED, REASON_DEFAULTED, summary)
    
    if summary.has_overdue and current != LoanStatus.ACTIVE:
        return StatusDecision(LoanStatus.ACTIVE, REASON_OVERDUE, summary)
    
    if current == LoanStatus.PENDING and summary.count > 0:
        return StatusDecision(LoanStatus.ACTIVE, REASON_STARTED, summary)
    
    return StatusDecision(current, None, summary)


class LoanStatusResolver:
    """Persists resolved status changes and emits their side effects"""
    
    def __init__(self, loan_manager: LoanManager, effects: Optional[Effects] = None):
        self.loan_manager = loan_manager
        self.effects = effects or NullEffects()
    
    def apply(self, loan: Loan, installments: List[Installment], now: datetime) -> StatusDecision:
        """
        Resolve and, when the status changes, persist it, write the audit
        entry and notify the customer of fresh delinquency
        
        Returns:
            The decision; decision.status != the loan's old status means a change
        """
        decision = resolve_loan_status(loan.status, installments)
        if decision.status == loan.status:
            return decision
        
        old_status = loan.status
        loan.status = decision.status
        loan.status_reason = decision.reason
        loan.last_checked = now
        loan.updated_at = now
        self.loan_manager.save_loan(loan)
        
        self.effects.audit(loan.tenant_id, AuditEntry(
            action=AuditEventType.LOAN_STATUS_AUTO_UPDATE,
            target_id=loan.id,
            metadata={
                "old_status": old_status.value,
                "new_status": decision.status.value,
                "reason": decision.reason,
                "overdue_count": decision.summary.overdue_count
            }
        ))
        logger.info(
            f"Loan {loan.id} status {old_status.value} -> {decision.status.value} ({decision.reason})",
            extra={'tenant_id': loan.tenant_id, 'loan_id': loan.id, 'action': 'loan_status_auto_update'}
        )
        
        if decision.summary.has_overdue:
            self.effects.notify(loan.tenant_id, loan.customer_id, "loan_overdue", {
                "loan_id": loan.id,
                "overdue_count": decision.summary.overdue_count,
                "overdue_amount": decision.summary.overdue_amount,
                "new_status": decision.status.value
            })
        
        return decision
