"""
Collections Management Module

Ageing analysis of overdue loans and collection cases for delinquent loans.
Automation opens and refreshes cases; only a human resolves them.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
import uuid

from .audit import AuditEventType
from .clock import Clock, SystemClock
from .effects import AuditEntry, Effects, NullEffects
from .exceptions import CollectionCaseNotFoundError
from .loans import Installment, InstallmentStatus, Loan, LoanManager, LoanStatus
from .storage import StorageInterface, StorageRecord
from .logging_config import get_logger

ZERO = Decimal('0.00')

# Loans collections follow
DELINQUENT_STATUSES = [LoanStatus.ACTIVE, LoanStatus.DEFAULTED]


class CasePriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CaseStatus(Enum):
    NEW = "new"
    CONTACTED = "contacted"
    PROMISED = "promised"        # Customer promised to pay
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class AgeingBucket(Enum):
    """Days-overdue ranges for portfolio risk reporting"""
    CURRENT = "current"          # 0-30 days
    DAYS_31_60 = "31_60"
    DAYS_61_90 = "61_90"
    DAYS_90_PLUS = "90_plus"


def priority_for_days(days_overdue: int) -> CasePriority:
    if days_overdue >= 90:
        return CasePriority.URGENT
    if days_overdue >= 60:
        return CasePriority.HIGH
    if days_overdue >= 30:
        return CasePriority.MEDIUM
    return CasePriority.LOW


def bucket_for_days(days_overdue: int) -> AgeingBucket:
    if days_overdue <= 30:
        return AgeingBucket.CURRENT
    if days_overdue <= 60:
        return AgeingBucket.DAYS_31_60
    if days_overdue <= 90:
        return AgeingBucket.DAYS_61_90
    return AgeingBucket.DAYS_90_PLUS


@dataclass(frozen=True)
class Delinquency:
    """Overdue position of one loan"""
    days_overdue: int           # Of the oldest overdue installment
    overdue_amount: Decimal     # Outstanding across all overdue installments
    overdue_count: int


def loan_delinquency(installments: List[Installment]) -> Optional[Delinquency]:
    """Delinquency of a loan, None when nothing is overdue"""
    overdue = [i for i in installments
               if i.status == InstallmentStatus.OVERDUE and not i.is_settled]
    if not overdue:
        return None
    return Delinquency(
        days_overdue=max(i.days_overdue for i in overdue),
        overdue_amount=sum((i.outstanding for i in overdue), ZERO),
        overdue_count=len(overdue)
    )


@dataclass
class CollectionNote:
    text: str
    author: str
    created_at: datetime
    
    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "author": self.author, "created_at": self.created_at.isoformat()}
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CollectionNote':
        return cls(text=data["text"], author=data["author"],
                   created_at=datetime.fromisoformat(data["created_at"]))


@dataclass
class CollectionCase(StorageRecord):
    """Remediation record for a delinquent loan"""
    tenant_id: str
    loan_id: str
    customer_id: str
    amount: Decimal
    days_overdue: int
    priority: CasePriority
    status: CaseStatus = CaseStatus.NEW
    notes: List[CollectionNote] = field(default_factory=list)
    assigned_to: Optional[str] = None
    
    @property
    def is_open(self) -> bool:
        return self.status != CaseStatus.RESOLVED
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "tenant_id": self.tenant_id,
            "loan_id": self.loan_id,
            "customer_id": self.customer_id,
            "amount": str(self.amount),
            "days_overdue": self.days_overdue,
            "priority": self.priority.value,
            "status": self.status.value,
            "notes": [n.to_dict() for n in self.notes],
            "assigned_to": self.assigned_to
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CollectionCase':
        return cls(
            id=data["id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            tenant_id=data["tenant_id"],
            loan_id=data["loan_id"],
            customer_id=data["customer_id"],
            amount=Decimal(data["amount"]),
            days_overdue=data["days_overdue"],
            priority=CasePriority(data["priority"]),
            status=CaseStatus(data["status"]),
            notes=[CollectionNote.from_dict(n) for n in data.get("notes", [])],
            assigned_to=data.get("assigned_to")
        )


class CollectionsManager:
    """
    Ageing analysis and collection case management
    """
    
    def __init__(
        self,
        storage: StorageInterface,
        loan_manager: LoanManager,
        effects: Optional[Effects] = None,
        clock: Optional[Clock] = None
    ):
        self.storage = storage
        self.loan_manager = loan_manager
        self.effects = effects or NullEffects()
        self.clock = clock or SystemClock()
        self.cases_table = "collection_cases"
        self.logger = get_logger("lending.collections")
    
    def sync_collection_cases(self, tenant_id: str) -> Dict[str, Any]:
        """
        Open or refresh a case for every active or defaulted loan with
        overdue installments. A failed case write is logged and counted,
        and the remaining loans are still synced.
        
        Returns:
            Dictionary with cases_created, cases_updated, cases_failed and
            total_amount_overdue
        """
        results = {"cases_created": 0, "cases_updated": 0, "cases_failed": 0,
                   "total_amount_overdue": ZERO}
        now = self.clock.now()
        
        for loan in self.loan_manager.list_loans(tenant_id, DELINQUENT_STATUSES):
            try:
                outcome = self._sync_case_for_loan(tenant_id, loan, now)
            except Exception as e:
                results["cases_failed"] += 1
                self.logger.error(f"Collection case sync failed: {e}",
                                  extra={'tenant_id': tenant_id, 'loan_id': loan.id})
                continue
            if outcome is None:
                continue
            action, amount = outcome
            results["total_amount_overdue"] += amount
            if action == "created":
                results["cases_created"] += 1
            elif action == "updated":
                results["cases_updated"] += 1
        
        return results
    
    def _sync_case_for_loan(self, tenant_id: str, loan: Loan,
                            now: datetime) -> Optional[Tuple[str, Decimal]]:
        """Returns (created|updated|unchanged, overdue amount), or None when nothing is overdue"""
        delinquency = loan_delinquency(self.loan_manager.get_installments(loan.id))
        if not delinquency:
            return None
        priority = priority_for_days(delinquency.days_overdue)
        
        case = self.get_open_case_for_loan(loan.id)
        if case:
            if (case.amount == delinquency.overdue_amount
                    and case.days_overdue == delinquency.days_overdue
                    and case.priority == priority):
                return "unchanged", delinquency.overdue_amount
            case.amount = delinquency.overdue_amount
            case.days_overdue = delinquency.days_overdue
            case.priority = priority
            case.updated_at = now
            self._save_case(case)
            outcome = "updated"
            action = AuditEventType.COLLECTION_CASE_UPDATED
        else:
            case = CollectionCase(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                tenant_id=tenant_id,
                loan_id=loan.id,
                customer_id=loan.customer_id,
                amount=delinquency.overdue_amount,
                days_overdue=delinquency.days_overdue,
                priority=priority
            )
            self._save_case(case)
            outcome = "created"
            action = AuditEventType.COLLECTION_CASE_OPENED
        
        self.effects.audit(tenant_id, AuditEntry(
            action=action,
            target_id=case.id,
            target_type="collection_case",
            metadata={
                "loan_id": loan.id,
                "amount": case.amount,
                "days_overdue": case.days_overdue,
                "priority": case.priority.value
            }
        ))
        return outcome, delinquency.overdue_amount
    
    def analyze_loan_ageing(self, tenant_id: str) -> Dict[str, Any]:
        """
        Bucket overdue amounts of active and defaulted loans by the age of
        their oldest overdue installment
        """
        breakdown = {bucket.value: {"count": 0, "amount": ZERO} for bucket in AgeingBucket}
        total = ZERO
        
        for loan in self.loan_manager.list_loans(tenant_id, DELINQUENT_STATUSES):
            delinquency = loan_delinquency(self.loan_manager.get_installments(loan.id))
            if not delinquency:
                continue
            entry = breakdown[bucket_for_days(delinquency.days_overdue).value]
            entry["count"] += 1
            entry["amount"] += delinquency.overdue_amount
            total += delinquency.overdue_amount
        
        return {"ageing_breakdown": breakdown, "total_ageing_amount": total}
    
    # Case management
    
    def get_case(self, case_id: str, tenant_id: Optional[str] = None) -> Optional[CollectionCase]:
        data = self.storage.load(self.cases_table, case_id)
        if not data or (tenant_id and data.get("tenant_id") != tenant_id):
            return None
        return CollectionCase.from_dict(data)
    
    def require_case(self, tenant_id: str, case_id: str) -> CollectionCase:
        case = self.get_case(case_id, tenant_id)
        if not case:
            raise CollectionCaseNotFoundError(case_id)
        return case
    
    def get_open_case_for_loan(self, loan_id: str) -> Optional[CollectionCase]:
        for data in self.storage.find(self.cases_table, {"loan_id": loan_id}):
            case = CollectionCase.from_dict(data)
            if case.is_open:
                return case
        return None
    
    def list_cases(self, tenant_id: str, status: Optional[CaseStatus] = None,
                   priority: Optional[CasePriority] = None,
                   assigned_to: Optional[str] = None) -> List[CollectionCase]:
        """Cases for a tenant, highest days overdue first"""
        filters: Dict[str, Any] = {"tenant_id": tenant_id}
        if status:
            filters["status"] = status.value
        if priority:
            filters["priority"] = priority.value
        if assigned_to:
            filters["assigned_to"] = assigned_to
        records = self.storage.query(self.cases_table, filters, order_by="days_overdue", descending=True)
        return [CollectionCase.from_dict(r) for r in records]
    
    def add_note(self, tenant_id: str, case_id: str, text: str, author: str) -> CollectionCase:
        if not text.strip():
            raise ValueError("Note text cannot be empty")
        case = self.require_case(tenant_id, case_id)
        now = self.clock.now()
        case.notes.append(CollectionNote(text=text, author=author, created_at=now))
        case.updated_at = now
        self._save_case(case)
        return case
    
    def assign_case(self, tenant_id: str, case_id: str, assignee: str) -> CollectionCase:
        """Assign a collector; the case counts as contacted from then on"""
        case = self.require_case(tenant_id, case_id)
        case.assigned_to = assignee
        case.status = CaseStatus.CONTACTED
        case.updated_at = self.clock.now()
        self._save_case(case)
        return case
    
    def update_case_status(self, tenant_id: str, case_id: str, status: CaseStatus) -> CollectionCase:
        case = self.require_case(tenant_id, case_id)
        case.status = status
        case.updated_at = self.clock.now()
        self._save_case(case)
        self.logger.info(f"Collection case {case_id} set to {status.value}",
                         extra={'tenant_id': tenant_id, 'loan_id': case.loan_id})
        return case
    
    def _save_case(self, case: CollectionCase) -> None:
        self.storage.save(self.cases_table, case.id, case.to_dict())
