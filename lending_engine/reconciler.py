"""
Repayment Reconciler

Moves past-due pending installments to overdue and keeps the days-overdue
counter and late fee of overdue installments in step with the run's clock.
Everything is derived from "now", so repeated runs converge instead of
accruing twice.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .audit import AuditEventType
from .effects import AuditEntry, Effects, NullEffects
from .late_fees import LateFeeConfig, calculate_late_fee
from .loans import Installment, InstallmentStatus, Loan, LoanManager

SECONDS_PER_DAY = 86400


@dataclass
class InstallmentOutcome:
    """Result of reconciling one installment"""
    installment: Installment
    changed: bool = False        # Something needs to be written
    transitioned: bool = False   # pending -> overdue happened
    fee_delta: Decimal = Decimal('0.00')


@dataclass
class LoanReconciliation:
    """Result of reconciling every installment of a loan"""
    loan_id: str
    installments: List[Installment] = field(default_factory=list)
    transitions: int = 0
    writes: int = 0
    late_fees_assessed: Decimal = Decimal('0.00')
    
    @property
    def changed(self) -> bool:
        return self.writes > 0


def days_overdue_at(installment: Installment, now: datetime) -> int:
    """Whole days between the due date (midnight UTC) and now, never negative"""
    seconds = (now - installment.due_at).total_seconds()
    return max(int(seconds // SECONDS_PER_DAY), 0)


def reconcile_installment(installment: Installment, now: datetime,
                          fee_config: LateFeeConfig) -> InstallmentOutcome:
    """
    Compute the next state of one installment. Pure: returns a new
    Installment, the input is left untouched.
    """
    if installment.status == InstallmentStatus.PAID or installment.amount_paid >= installment.amount_due:
        return InstallmentOutcome(installment)
    
    past_due = installment.due_at < now
    
    if past_due and installment.status == InstallmentStatus.PENDING:
        days = days_overdue_at(installment, now)
        fee = calculate_late_fee(installment.outstanding, days, fee_config)
        updated = replace(
            installment,
            status=InstallmentStatus.OVERDUE,
            days_overdue=days,
            late_fee=fee,
            last_checked=now,
            updated_at=now
        )
        return InstallmentOutcome(updated, changed=True, transitioned=True,
                                  fee_delta=fee - installment.late_fee)
    
    if past_due and installment.status == InstallmentStatus.OVERDUE:
        days = days_overdue_at(installment, now)
        fee = calculate_late_fee(installment.outstanding, days, fee_config)
        if days == installment.days_overdue and fee == installment.late_fee:
            return InstallmentOutcome(installment)
        updated = replace(
            installment,
            days_overdue=days,
            late_fee=fee,
            last_checked=now,
            updated_at=now
        )
        return InstallmentOutcome(updated, changed=True, fee_delta=fee - installment.late_fee)
    
    # Future-dated, or partial
    return InstallmentOutcome(installment)


class RepaymentReconciler:
    """Applies reconcile_installment across a loan and persists the result"""
    
    def __init__(self, loan_manager: LoanManager, effects: Optional[Effects] = None):
        self.loan_manager = loan_manager
        self.effects = effects or NullEffects()
    
    def reconcile_loan(
        self,
        loan: Loan,
        installments: List[Installment],
        now: datetime,
        fee_config: LateFeeConfig
    ) -> LoanReconciliation:
        """
        Reconcile and persist a loan's installments. Writes are committed
        before this returns, so the status resolver can read them.
        """
        result = LoanReconciliation(loan_id=loan.id)
        to_write = []
        transitioned = []
        
        for installment in installments:
            outcome = reconcile_installment(installment, now, fee_config)
            result.installments.append(outcome.installment)
            if outcome.changed:
                to_write.append(outcome.installment)
                result.late_fees_assessed += outcome.fee_delta
            if outcome.transitioned:
                transitioned.append(outcome.installment)
        
        if to_write:
            result.writes = self.loan_manager.save_installments(to_write)
        result.transitions = len(transitioned)
        
        for installment in transitioned:
            self.effects.audit(loan.tenant_id, AuditEntry(
                action=AuditEventType.REPAYMENT_OVERDUE,
                target_id=installment.id,
                target_type="installment",
                metadata={
                    "loan_id": loan.id,
                    "month": installment.month,
                    "days_overdue": installment.days_overdue,
                    "late_fee": installment.late_fee,
                    "overdue_amount": installment.outstanding
                }
            ))
        
        return result
