"""
Portfolio Batch Orchestrator

LoanLifecycleEngine walks a tenant's active and pending loans once per
invocation: reconcile installments, resolve loan status, decide pending
applications and refresh collection cases. Each call is idempotent and safe
to re-run; scheduling is left to the caller.
"""

import contextvars
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .audit import AuditEventType
from .clock import Clock, SystemClock
from .collections import CollectionsManager
from .decision_gate import DecisionGate, DecisionOutcome
from .effects import AuditEntry, Effects, NullEffects
from .loans import InstallmentStatus, Loan, LoanManager, LoanStatus, PROCESSABLE_STATUSES
from .reconciler import RepaymentReconciler
from .settings import TenantLoanSettings, TenantSettingsProvider
from .status_resolver import LoanStatusResolver, resolve_loan_status
from .tenancy import tenant_context
from .logging_config import get_logger, log_action

ZERO = Decimal('0.00')


@dataclass
class LoanRunResult:
    """What processing one loan did"""
    loan_id: str
    updated: bool = False
    transitions: int = 0
    late_fees: Decimal = ZERO
    old_status: Optional[LoanStatus] = None
    new_status: Optional[LoanStatus] = None
    decision: Optional[DecisionOutcome] = None


@dataclass
class _LoanTask:
    loan_id: str
    result: Optional[LoanRunResult] = None
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class PortfolioRunStats:
    """Aggregate statistics of one tenant run"""
    tenant_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    loans_processed: int = 0
    loans_updated: int = 0
    total_late_fees: Decimal = ZERO
    installments_overdue: int = 0
    loans_failed: int = 0
    failed_loan_ids: List[str] = field(default_factory=list)
    loans_skipped: int = 0
    auto_approved: int = 0
    auto_rejected: int = 0
    manual_review: int = 0
    cases_created: int = 0
    cases_updated: int = 0
    cases_failed: int = 0
    collections_failed: bool = False
    aborted: bool = False
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "loans_processed": self.loans_processed,
            "loans_updated": self.loans_updated,
            "total_late_fees": str(self.total_late_fees),
            "installments_overdue": self.installments_overdue,
            "loans_failed": self.loans_failed,
            "failed_loan_ids": list(self.failed_loan_ids),
            "loans_skipped": self.loans_skipped,
            "auto_approved": self.auto_approved,
            "auto_rejected": self.auto_rejected,
            "manual_review": self.manual_review,
            "cases_created": self.cases_created,
            "cases_updated": self.cases_updated,
            "cases_failed": self.cases_failed,
            "collections_failed": self.collections_failed,
            "aborted": self.aborted
        }


class LoanLifecycleEngine:
    """
    Drives the automated part of the loan lifecycle for one tenant at a time
    """
    
    def __init__(
        self,
        loan_manager: LoanManager,
        settings_provider: TenantSettingsProvider,
        collections_manager: Optional[CollectionsManager] = None,
        effects: Optional[Effects] = None,
        clock: Optional[Clock] = None,
        max_workers: int = 1,
        run_timeout_seconds: Optional[float] = None,
        sync_collections: bool = True
    ):
        self.loan_manager = loan_manager
        self.settings_provider = settings_provider
        self.collections_manager = collections_manager
        self.effects = effects or NullEffects()
        self.clock = clock or SystemClock()
        self.max_workers = max(1, max_workers)
        self.run_timeout_seconds = run_timeout_seconds
        self.sync_collections = sync_collections
        
        self.reconciler = RepaymentReconciler(loan_manager, self.effects)
        self.resolver = LoanStatusResolver(loan_manager, self.effects)
        self.gate = DecisionGate(loan_manager, self.effects)
        self.logger = get_logger("lending.engine")
    
    # Per-loan processing
    
    def process_loan(self, loan: Loan, settings: TenantLoanSettings, now: datetime) -> LoanRunResult:
        """
        Process one loan. Installment writes are committed before the status
        resolver reads them.
        """
        result = LoanRunResult(loan_id=loan.id, old_status=loan.status, new_status=loan.status)
        installments = self.loan_manager.get_installments(loan.id)
        
        if loan.status == LoanStatus.PENDING and not installments:
            decision = self.gate.apply(loan, settings, now)
            result.decision = decision.outcome
            result.new_status = loan.status
            result.updated = decision.outcome != DecisionOutcome.MANUAL_REVIEW
            return result
        
        reconciliation = self.reconciler.reconcile_loan(
            loan, installments, now, settings.late_fee_config
        )
        status_decision = self.resolver.apply(loan, reconciliation.installments, now)
        
        result.transitions = reconciliation.transitions
        result.late_fees = reconciliation.late_fees_assessed
        result.new_status = status_decision.status
        result.updated = reconciliation.changed or status_decision.status != result.old_status
        return result
    
    def refresh_loan(self, tenant_id: str, loan_id: str) -> LoanRunResult:
        """Process a single loan immediately, e.g. after a repayment"""
        with tenant_context(tenant_id):
            loan = self.loan_manager.require_loan(tenant_id, loan_id)
            settings = self.settings_provider.get_loan_settings(tenant_id)
            return self.process_loan(loan, settings, self.clock.now())
    
    def _run_task(self, loan: Loan, settings: TenantLoanSettings, now: datetime,
                  deadline: Optional[float]) -> _LoanTask:
        if deadline is not None and time.monotonic() >= deadline:
            return _LoanTask(loan_id=loan.id, skipped=True)
        try:
            return _LoanTask(loan_id=loan.id, result=self.process_loan(loan, settings, now))
        except Exception as e:
            self.logger.error(
                f"Failed to process loan {loan.id}: {e}",
                exc_info=True,
                extra={'tenant_id': loan.tenant_id, 'loan_id': loan.id}
            )
            return _LoanTask(loan_id=loan.id, error=str(e))
    
    def _run_batch(self, loans: List[Loan], settings: TenantLoanSettings, now: datetime,
                   deadline: Optional[float]) -> List[_LoanTask]:
        if self.max_workers == 1 or len(loans) <= 1:
            return [self._run_task(loan, settings, now, deadline) for loan in loans]
        
        tasks = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            # Each task gets its own context copy so the tenant context follows it
            futures = [
                executor.submit(contextvars.copy_context().run,
                                self._run_task, loan, settings, now, deadline)
                for loan in loans
            ]
            for future in as_completed(futures):
                tasks.append(future.result())
        return tasks
    
    # Tenant runs
    
    def process_tenant_portfolio(self, tenant_id: str,
                                 run_timeout_seconds: Optional[float] = None) -> PortfolioRunStats:
        """
        Run the automation once over a tenant's active and pending loans
        
        Per-loan failures are logged and counted in loans_failed; a failure to
        list the tenant's loans propagates to the caller.
        
        Args:
            tenant_id: Tenant to process
            run_timeout_seconds: Overrides the engine's run deadline
            
        Returns:
            PortfolioRunStats for the run
        """
        timeout = run_timeout_seconds if run_timeout_seconds is not None else self.run_timeout_seconds
        deadline = time.monotonic() + timeout if timeout is not None else None
        
        with tenant_context(tenant_id):
            now = self.clock.now()
            settings = self.settings_provider.get_loan_settings(tenant_id)
            loans = self.loan_manager.list_loans(tenant_id, PROCESSABLE_STATUSES)
            stats = PortfolioRunStats(tenant_id=tenant_id, started_at=now)
            
            for task in self._run_batch(loans, settings, now, deadline):
                if task.skipped:
                    stats.loans_skipped += 1
                    stats.aborted = True
                elif task.error is not None:
                    stats.loans_failed += 1
                    stats.failed_loan_ids.append(task.loan_id)
                else:
                    self._tally(stats, task.result)
            
            if self.sync_collections and self.collections_manager and not stats.aborted:
                # Loan writes are committed by now; sync errors only mark the stats
                try:
                    cases = self.collections_manager.sync_collection_cases(tenant_id)
                except Exception as e:
                    stats.collections_failed = True
                    self.logger.error(f"Collection case sync failed: {e}",
                                      exc_info=True, extra={'tenant_id': tenant_id})
                else:
                    stats.cases_created = cases["cases_created"]
                    stats.cases_updated = cases["cases_updated"]
                    stats.cases_failed = cases["cases_failed"]
            
            stats.finished_at = self.clock.now()
            self.effects.audit(tenant_id, AuditEntry(
                action=AuditEventType.PORTFOLIO_RUN_COMPLETED,
                target_id=tenant_id,
                target_type="tenant",
                metadata=stats.to_dict()
            ))
            log_action(
                self.logger, "info",
                f"Processed {stats.loans_processed} loans, {stats.loans_updated} updated, "
                f"{stats.loans_failed} failed",
                action="process_tenant_portfolio",
                resource="portfolio",
                tenant_id=tenant_id,
                extra={"total_late_fees": str(stats.total_late_fees), "aborted": stats.aborted,
                       "cases_failed": stats.cases_failed}
            )
        return stats
    
    @staticmethod
    def _tally(stats: PortfolioRunStats, result: LoanRunResult) -> None:
        stats.loans_processed += 1
        if result.updated:
            stats.loans_updated += 1
        stats.total_late_fees += result.late_fees
        stats.installments_overdue += result.transitions
        if result.decision == DecisionOutcome.APPROVE:
            stats.auto_approved += 1
        elif result.decision == DecisionOutcome.REJECT:
            stats.auto_rejected += 1
        elif result.decision == DecisionOutcome.MANUAL_REVIEW:
            stats.manual_review += 1
    
    def process_all_tenants(self) -> Dict[str, Any]:
        """Run every active tenant; one tenant failing does not stop the others"""
        runs = []
        failed = []
        for tenant in self.settings_provider.tenant_manager.list_tenants(is_active=True):
            try:
                runs.append(self.process_tenant_portfolio(tenant.id))
            except Exception as e:
                self.logger.error(f"Portfolio run failed for tenant {tenant.id}: {e}",
                                  exc_info=True, extra={'tenant_id': tenant.id})
                failed.append(tenant.id)
        return {
            "tenants_processed": len(runs),
            "tenants_failed": failed,
            "runs": [run.to_dict() for run in runs]
        }
    
    # Reports
    
    def detect_defaults(self, tenant_id: str) -> Dict[str, Any]:
        """
        Report loans meeting the default rules and active loans at risk
        (overdue but not yet in default). Read-only.
        """
        defaults_detected = 0
        default_loan_ids = []
        at_risk_loans = []
        
        for loan in self.loan_manager.list_loans(tenant_id, [LoanStatus.ACTIVE, LoanStatus.DEFAULTED]):
            installments = self.loan_manager.get_installments(loan.id)
            decision = resolve_loan_status(loan.status, installments)
            summary = decision.summary
            if decision.status == LoanStatus.DEFAULTED:
                defaults_detected += 1
                default_loan_ids.append(loan.id)
            elif summary.has_overdue:
                at_risk_loans.append({
                    "loan_id": loan.id,
                    "customer_id": loan.customer_id,
                    "overdue_count": summary.overdue_count,
                    "overdue_amount": summary.overdue_amount,
                    "days_overdue": max(i.days_overdue for i in installments)
                })
        
        return {
            "defaults_detected": defaults_detected,
            "default_loan_ids": default_loan_ids,
            "at_risk_loans": at_risk_loans
        }
    
    def analyze_loan_ageing(self, tenant_id: str) -> Dict[str, Any]:
        if not self.collections_manager:
            raise RuntimeError("Ageing analysis requires a collections manager")
        return self.collections_manager.analyze_loan_ageing(tenant_id)
    
    def get_overdue_summary(self, tenant_id: str) -> Dict[str, Any]:
        """Overdue installment totals across active and defaulted loans"""
        summary = {
            "overdue_count": 0,
            "total_overdue_amount": ZERO,
            "total_late_fees": ZERO,
            "loans_at_risk": 0
        }
        for loan in self.loan_manager.list_loans(tenant_id, [LoanStatus.ACTIVE, LoanStatus.DEFAULTED]):
            overdue = [
                i for i in self.loan_manager.get_installments(loan.id)
                if i.status == InstallmentStatus.OVERDUE
            ]
            if not overdue:
                continue
            summary["loans_at_risk"] += 1
            summary["overdue_count"] += len(overdue)
            summary["total_overdue_amount"] += sum((i.outstanding for i in overdue), ZERO)
            summary["total_late_fees"] += sum((i.late_fee for i in overdue), ZERO)
        return summary
