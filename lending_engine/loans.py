"""
Loan Module

Loan and installment records, origination with schedule generation,
application intake, disbursement and repayment recording.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from enum import Enum
import uuid

from .amortization import build_schedule
from .audit import AuditEventType
from .clock import Clock, SystemClock
from .effects import AuditEntry, Effects, NullEffects
from .exceptions import InvalidLoanStateError, LoanNotFoundError, LoanValidationError
from .late_fees import round_money
from .settings import TenantSettingsProvider
from .storage import StorageInterface, StorageRecord, WriteBatch
from .logging_config import get_logger

ZERO = Decimal('0.00')


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "pending"        # Awaiting decision or first automation tick
    APPROVED = "approved"      # Application approved, not yet disbursed
    REJECTED = "rejected"      # Application rejected
    ACTIVE = "active"          # In repayment
    COMPLETED = "completed"    # Fully repaid
    DEFAULTED = "defaulted"    # Default rules triggered


class InstallmentStatus(Enum):
    """Repayment installment states"""
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    OVERDUE = "overdue"


# Loans the periodic engine walks
PROCESSABLE_STATUSES = (LoanStatus.ACTIVE, LoanStatus.PENDING)
# Loans that can take repayments
REPAYABLE_STATUSES = (LoanStatus.PENDING, LoanStatus.ACTIVE, LoanStatus.DEFAULTED)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Loan(StorageRecord):
    """A disbursed or proposed credit instrument"""
    tenant_id: str
    customer_id: str
    principal: Decimal
    annual_interest_rate: Decimal       # Percent, e.g. 15 for 15%
    term_months: int
    start_date: date                    # Disbursement date, schedule anchor
    status: LoanStatus = LoanStatus.PENDING
    officer_id: Optional[str] = None
    loan_type: str = "personal"
    risk_score: Optional[int] = None    # 0-100, lower is safer
    collateral_included: bool = False
    is_deleted: bool = False
    status_reason: Optional[str] = None
    auto_processed: bool = False
    last_checked: Optional[datetime] = None
    
    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        result['start_date'] = self.start_date.isoformat()
        result['last_checked'] = _iso(self.last_checked)
        return result
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['principal'] = Decimal(data['principal'])
        data['annual_interest_rate'] = Decimal(data['annual_interest_rate'])
        data['start_date'] = date.fromisoformat(data['start_date'])
        data['status'] = LoanStatus(data['status'])
        data['last_checked'] = _parse_datetime(data.get('last_checked'))
        return cls(**data)


@dataclass
class Installment(StorageRecord):
    """One scheduled payment period of a loan"""
    tenant_id: str
    loan_id: str
    month: int
    due_date: date
    amount_due: Decimal
    principal_component: Decimal
    interest_component: Decimal
    remaining_balance: Decimal
    amount_paid: Decimal = ZERO
    late_fee: Decimal = ZERO
    status: InstallmentStatus = InstallmentStatus.PENDING
    days_overdue: int = 0
    paid_at: Optional[datetime] = None
    last_checked: Optional[datetime] = None
    
    @property
    def outstanding(self) -> Decimal:
        """Unpaid part of amount_due"""
        return max(self.amount_due - self.amount_paid, ZERO)
    
    @property
    def is_settled(self) -> bool:
        return self.status == InstallmentStatus.PAID or self.amount_paid >= self.amount_due
    
    @property
    def due_at(self) -> datetime:
        """Due date as midnight UTC"""
        return datetime(self.due_date.year, self.due_date.month, self.due_date.day,
                        tzinfo=timezone.utc)
    
    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        result['due_date'] = self.due_date.isoformat()
        result['paid_at'] = _iso(self.paid_at)
        result['last_checked'] = _iso(self.last_checked)
        return result
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['due_date'] = date.fromisoformat(data['due_date'])
        for key in ('amount_due', 'principal_component', 'interest_component',
                    'remaining_balance', 'amount_paid', 'late_fee'):
            data[key] = Decimal(data[key])
        data['status'] = InstallmentStatus(data['status'])
        data['paid_at'] = _parse_datetime(data.get('paid_at'))
        data['last_checked'] = _parse_datetime(data.get('last_checked'))
        return cls(**data)


class LoanManager:
    """
    Persists loans and installments and handles the human-driven parts of the
    lifecycle: origination, applications, disbursement and repayments
    """
    
    def __init__(
        self,
        storage: StorageInterface,
        settings_provider: TenantSettingsProvider,
        effects: Optional[Effects] = None,
        clock: Optional[Clock] = None,
        batch_size: int = 400
    ):
        self.storage = storage
        self.settings_provider = settings_provider
        self.effects = effects or NullEffects()
        self.clock = clock or SystemClock()
        self.batch_size = batch_size
        self.logger = get_logger("lending.loans")
        
        self.loans_table = "loans"
        self.installments_table = "installments"
    
    # Origination
    
    def _new_loan(
        self,
        tenant_id: str,
        customer_id: str,
        principal: Decimal,
        annual_interest_rate: Optional[Decimal],
        term_months: Optional[int],
        start_date: Optional[date],
        officer_id: Optional[str],
        loan_type: str,
        risk_score: Optional[int],
        collateral_included: bool
    ) -> Loan:
        settings = self.settings_provider.get_loan_settings(tenant_id)
        principal = round_money(Decimal(principal))
        if principal < settings.min_loan_amount or principal > settings.max_loan_amount:
            raise LoanValidationError(
                f"Loan amount {principal} outside allowed range "
                f"{settings.min_loan_amount}-{settings.max_loan_amount}"
            )
        
        rate = Decimal(annual_interest_rate) if annual_interest_rate is not None else settings.default_interest_rate
        term = term_months if term_months is not None else settings.default_loan_duration
        if rate < 0:
            raise LoanValidationError("Interest rate cannot be negative")
        if term < 1:
            raise LoanValidationError("Term must be at least one month")
        if risk_score is not None and not 0 <= risk_score <= 100:
            raise LoanValidationError("Risk score must be between 0 and 100")
        
        now = self.clock.now()
        return Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            customer_id=customer_id,
            principal=principal,
            annual_interest_rate=rate,
            term_months=term,
            start_date=start_date or now.date(),
            officer_id=officer_id,
            loan_type=loan_type,
            risk_score=risk_score,
            collateral_included=collateral_included
        )
    
    def _schedule_for(self, loan: Loan) -> List[Installment]:
        now = self.clock.now()
        return [
            Installment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                tenant_id=loan.tenant_id,
                loan_id=loan.id,
                month=entry.month,
                due_date=entry.due_date,
                amount_due=entry.amount_due,
                principal_component=entry.principal_component,
                interest_component=entry.interest_component,
                remaining_balance=entry.remaining_balance
            )
            for entry in build_schedule(loan.principal, loan.annual_interest_rate,
                                        loan.term_months, loan.start_date)
        ]
    
    def originate_loan(
        self,
        tenant_id: str,
        customer_id: str,
        principal: Decimal,
        annual_interest_rate: Optional[Decimal] = None,
        term_months: Optional[int] = None,
        start_date: Optional[date] = None,
        officer_id: Optional[str] = None,
        loan_type: str = "personal",
        risk_score: Optional[int] = None,
        collateral_included: bool = False
    ) -> Loan:
        """
        Book a loan and write its full repayment schedule in one batch
        
        Rate and term default to the tenant's settings when omitted. The loan
        starts as pending; the next engine run moves it to active.
        
        Raises:
            LoanValidationError: amount outside tenant bounds or invalid terms
        """
        loan = self._new_loan(tenant_id, customer_id, principal, annual_interest_rate,
                              term_months, start_date, officer_id, loan_type,
                              risk_score, collateral_included)
        installments = self._schedule_for(loan)
        
        with WriteBatch(self.storage, self.batch_size) as batch:
            batch.save(self.loans_table, loan.id, loan.to_dict())
            for installment in installments:
                batch.save(self.installments_table, installment.id, installment.to_dict())
        
        self.effects.audit(tenant_id, AuditEntry(
            action=AuditEventType.LOAN_ORIGINATED,
            target_id=loan.id,
            actor=officer_id or "system",
            metadata={
                "customer_id": customer_id,
                "principal": loan.principal,
                "annual_interest_rate": loan.annual_interest_rate,
                "term_months": loan.term_months,
                "monthly_payment": installments[0].amount_due,
                "start_date": loan.start_date.isoformat()
            }
        ))
        self.logger.info(f"Originated loan {loan.id} for {loan.principal}",
                         extra={'tenant_id': tenant_id, 'loan_id': loan.id})
        return loan
    
    def submit_application(
        self,
        tenant_id: str,
        customer_id: str,
        principal: Decimal,
        annual_interest_rate: Optional[Decimal] = None,
        term_months: Optional[int] = None,
        officer_id: Optional[str] = None,
        loan_type: str = "personal",
        risk_score: Optional[int] = None,
        collateral_included: bool = False
    ) -> Loan:
        """Record a pending application with no schedule, to be decided by risk score"""
        loan = self._new_loan(tenant_id, customer_id, principal, annual_interest_rate,
                              term_months, None, officer_id, loan_type,
                              risk_score, collateral_included)
        self.save_loan(loan)
        
        self.effects.audit(tenant_id, AuditEntry(
            action=AuditEventType.LOAN_APPLICATION_SUBMITTED,
            target_id=loan.id,
            actor=officer_id or "system",
            metadata={
                "customer_id": customer_id,
                "principal": loan.principal,
                "risk_score": risk_score
            }
        ))
        return loan
    
    def disburse_loan(self, tenant_id: str, loan_id: str,
                      disbursement_date: Optional[date] = None) -> Loan:
        """
        Disburse an approved application: anchor the schedule at the
        disbursement date, write it, and activate the loan
        """
        loan = self.require_loan(tenant_id, loan_id)
        if loan.status != LoanStatus.APPROVED:
            raise InvalidLoanStateError(loan.id, loan.status.value, "disburse")
        if self.get_installments(loan.id):
            raise InvalidLoanStateError(loan.id, loan.status.value, "disburse twice")
        
        loan.start_date = disbursement_date or self.clock.now().date()
        loan.status = LoanStatus.ACTIVE
        loan.status_reason = "disbursed"
        loan.updated_at = self.clock.now()
        installments = self._schedule_for(loan)
        
        with WriteBatch(self.storage, self.batch_size) as batch:
            for installment in installments:
                batch.save(self.installments_table, installment.id, installment.to_dict())
            batch.save(self.loans_table, loan.id, loan.to_dict())
        
        self.effects.audit(tenant_id, AuditEntry(
            action=AuditEventType.LOAN_DISBURSED,
            target_id=loan.id,
            metadata={
                "principal": loan.principal,
                "start_date": loan.start_date.isoformat(),
                "installments": len(installments)
            }
        ))
        return loan
    
    # Repayments
    
    def record_payment(self, tenant_id: str, loan_id: str, amount: Decimal,
                       paid_at: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Apply a payment to the oldest unpaid installments first
        
        Fully covered installments become paid. A partly covered installment
        becomes partial, unless it is already overdue. Loan status is not
        changed here; run the status resolver afterwards.
        
        Raises:
            LoanValidationError: amount not positive or above the remaining balance
            InvalidLoanStateError: loan cannot take repayments
        """
        loan = self.require_loan(tenant_id, loan_id)
        if loan.status not in REPAYABLE_STATUSES:
            raise InvalidLoanStateError(loan.id, loan.status.value, "record payment")
        
        amount = round_money(Decimal(amount))
        installments = self.get_installments(loan.id)
        remaining_balance = sum((i.outstanding for i in installments if not i.is_settled), ZERO)
        if amount <= 0:
            raise LoanValidationError("Payment amount must be positive")
        if amount > remaining_balance:
            raise LoanValidationError(
                f"Payment {amount} exceeds remaining balance {remaining_balance}"
            )
        
        paid_at = paid_at or self.clock.now()
        left = amount
        allocations = []
        changed = []
        for installment in installments:
            if left <= 0:
                break
            if installment.is_settled:
                continue
            applied = min(left, installment.outstanding)
            installment.amount_paid += applied
            left -= applied
            if installment.amount_paid >= installment.amount_due:
                installment.status = InstallmentStatus.PAID
                installment.paid_at = paid_at
            elif installment.status != InstallmentStatus.OVERDUE:
                # Overdue stays overdue; the next run recomputes its fee on what is left
                installment.status = InstallmentStatus.PARTIAL
            installment.updated_at = self.clock.now()
            changed.append(installment)
            allocations.append({
                "installment_id": installment.id,
                "month": installment.month,
                "applied": applied,
                "status": installment.status.value
            })
        
        self.save_installments(changed)
        
        self.effects.audit(tenant_id, AuditEntry(
            action=AuditEventType.REPAYMENT_RECORDED,
            target_id=loan.id,
            metadata={"amount": amount, "allocations": allocations}
        ))
        return {
            "loan_id": loan.id,
            "amount": amount,
            "allocations": allocations,
            "remaining_balance": remaining_balance - amount
        }
    
    def soft_delete_loan(self, tenant_id: str, loan_id: str, actor: str = "system") -> Loan:
        """Flag a loan as deleted; automation skips it from then on"""
        loan = self.require_loan(tenant_id, loan_id)
        loan.is_deleted = True
        loan.updated_at = self.clock.now()
        self.save_loan(loan)
        self.effects.audit(tenant_id, AuditEntry(
            action=AuditEventType.LOAN_DELETED, target_id=loan.id, actor=actor
        ))
        return loan
    
    # Queries
    
    def get_loan(self, loan_id: str, tenant_id: Optional[str] = None) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        if not data:
            return None
        if tenant_id and data.get('tenant_id') != tenant_id:
            return None
        return Loan.from_dict(data)
    
    def require_loan(self, tenant_id: str, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id, tenant_id)
        if not loan:
            raise LoanNotFoundError(loan_id)
        return loan
    
    def list_loans(
        self,
        tenant_id: str,
        statuses: Optional[Iterable[LoanStatus]] = None,
        include_deleted: bool = False
    ) -> List[Loan]:
        """Tenant loans, optionally limited to some statuses, oldest first"""
        filters: Dict[str, Any] = {'tenant_id': tenant_id}
        if not include_deleted:
            filters['is_deleted'] = False
        where = []
        if statuses is not None:
            where.append(('status', 'in', [s.value for s in statuses]))
        records = self.storage.query(self.loans_table, filters, where, order_by='created_at')
        return [Loan.from_dict(r) for r in records]
    
    def get_installments(self, loan_id: str) -> List[Installment]:
        """Installments of a loan ordered by month"""
        records = self.storage.query(self.installments_table, {'loan_id': loan_id},
                                     order_by='month')
        return [Installment.from_dict(r) for r in records]
    
    def get_next_installment(self, loan_id: str) -> Optional[Installment]:
        """Earliest installment that is not yet settled"""
        for installment in self.get_installments(loan_id):
            if not installment.is_settled:
                return installment
        return None
    
    def get_balance_summary(self, loan_id: str) -> Dict[str, Any]:
        installments = self.get_installments(loan_id)
        total_due = sum((i.amount_due for i in installments), ZERO)
        total_paid = sum((i.amount_paid for i in installments), ZERO)
        next_installment = self.get_next_installment(loan_id)
        return {
            "total_due": total_due,
            "total_paid": total_paid,
            "outstanding": sum((i.outstanding for i in installments), ZERO),
            "late_fees": sum((i.late_fee for i in installments), ZERO),
            "installments": len(installments),
            "paid_installments": sum(1 for i in installments if i.status == InstallmentStatus.PAID),
            "next_due_date": next_installment.due_date.isoformat() if next_installment else None
        }
    
    # Persistence
    
    def save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, loan.to_dict())
    
    def save_installments(self, installments: List[Installment]) -> int:
        """Write installments in batches, returns the number written"""
        with WriteBatch(self.storage, self.batch_size) as batch:
            for installment in installments:
                batch.save(self.installments_table, installment.id, installment.to_dict())
        return batch.committed
