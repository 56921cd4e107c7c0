"""
Risk-Based Decision Gate

Auto-approves or auto-rejects pending applications by risk score and
leaves everything in between for manual review.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .audit import AuditEventType
from .effects import AuditEntry, Effects, NullEffects
from .loans import Loan, LoanManager, LoanStatus
from .settings import TenantLoanSettings, DEFAULT_LOAN_SETTINGS
from .logging_config import get_logger

logger = get_logger("lending.decisions")


class DecisionOutcome(Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MANUAL_REVIEW = "manual_review"


@dataclass(frozen=True)
class Decision:
    outcome: DecisionOutcome
    reason: str


def decide(risk_score: Optional[int], settings: TenantLoanSettings = DEFAULT_LOAN_SETTINGS) -> Decision:
    """
    Map a risk score to an outcome: below auto_approve_below approves, at or
    above auto_reject_at_or_above rejects, anything else (or no score) goes
    to manual review
    """
    if risk_score is None:
        return Decision(DecisionOutcome.MANUAL_REVIEW, "No risk score available")
    if risk_score < settings.auto_approve_below:
        return Decision(
            DecisionOutcome.APPROVE,
            f"Risk score {risk_score} is below the auto-approval threshold of {settings.auto_approve_below}"
        )
    if risk_score >= settings.auto_reject_at_or_above:
        return Decision(
            DecisionOutcome.REJECT,
            f"Risk score {risk_score} is at or above the auto-rejection threshold of {settings.auto_reject_at_or_above}"
        )
    return Decision(DecisionOutcome.MANUAL_REVIEW, f"Risk score {risk_score} requires manual review")


class DecisionGate:
    """Applies decide() to pending applications and persists automatic outcomes"""
    
    def __init__(self, loan_manager: LoanManager, effects: Optional[Effects] = None):
        self.loan_manager = loan_manager
        self.effects = effects or NullEffects()
    
    def apply(self, loan: Loan, settings: TenantLoanSettings, now: datetime) -> Decision:
        """
        Decide a pending application. Loans in any other status are left
        alone and reported as manual review.
        """
        if loan.status != LoanStatus.PENDING:
            return Decision(DecisionOutcome.MANUAL_REVIEW, f"Loan is {loan.status.value}")
        
        decision = decide(loan.risk_score, settings)
        if decision.outcome == DecisionOutcome.MANUAL_REVIEW:
            return decision
        
        approved = decision.outcome == DecisionOutcome.APPROVE
        loan.status = LoanStatus.APPROVED if approved else LoanStatus.REJECTED
        loan.status_reason = decision.reason
        loan.auto_processed = True
        loan.last_checked = now
        loan.updated_at = now
        self.loan_manager.save_loan(loan)
        
        self.effects.audit(loan.tenant_id, AuditEntry(
            action=AuditEventType.LOAN_AUTO_APPROVED if approved else AuditEventType.LOAN_AUTO_REJECTED,
            target_id=loan.id,
            metadata={
                "auto_processed": True,
                "risk_score": loan.risk_score,
                "reason": decision.reason
            }
        ))
        logger.info(f"Loan {loan.id} auto-{'approved' if approved else 'rejected'}",
                    extra={'tenant_id': loan.tenant_id, 'loan_id': loan.id})
        return decision
