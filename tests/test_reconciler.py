"""
Test suite for the repayment reconciler

Covers the pure per-installment transition and the persisting wrapper.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from lending_engine.late_fees import LateFeeConfig
from lending_engine.loans import InstallmentStatus
from lending_engine.reconciler import (
    RepaymentReconciler, days_overdue_at, reconcile_installment
)

from .conftest import NOW, make_installment


FEES = LateFeeConfig()


class TestReconcileInstallment:
    """Test the single-installment transition"""
    
    def test_past_due_pending_becomes_overdue(self):
        """Due 2024-05-06, checked 2024-06-15 -> 40 days, 2.75% fee"""
        installment = make_installment(due_date=date(2024, 5, 6))
        
        outcome = reconcile_installment(installment, NOW, FEES)
        
        assert outcome.changed and outcome.transitioned
        assert outcome.installment.status == InstallmentStatus.OVERDUE
        assert outcome.installment.days_overdue == 40
        assert outcome.installment.late_fee == Decimal('27.50')
        assert outcome.installment.last_checked == NOW
        assert outcome.fee_delta == Decimal('27.50')
        # Input is not mutated
        assert installment.status == InstallmentStatus.PENDING
    
    def test_second_pass_is_a_no_op(self):
        """Reconciling the output again at the same instant writes nothing"""
        first = reconcile_installment(make_installment(due_date=date(2024, 5, 6)), NOW, FEES)
        second = reconcile_installment(first.installment, NOW, FEES)
        
        assert not second.changed
        assert second.fee_delta == Decimal('0.00')
        assert second.installment == first.installment
    
    def test_overdue_refreshes_days_and_fee(self):
        """Fee is replaced, not added to"""
        installment = make_installment(
            due_date=date(2024, 5, 6), status=InstallmentStatus.OVERDUE,
            days_overdue=10, late_fee="2.50"
        )
        
        outcome = reconcile_installment(installment, NOW, FEES)
        
        assert outcome.changed and not outcome.transitioned
        assert outcome.installment.days_overdue == 40
        assert outcome.installment.late_fee == Decimal('27.50')
        assert outcome.fee_delta == Decimal('25.00')
    
    def test_future_installment_untouched(self):
        installment = make_installment(due_date=date(2024, 7, 1))
        outcome = reconcile_installment(installment, NOW, FEES)
        assert not outcome.changed
        assert outcome.installment is installment
    
    def test_due_today_is_past_due_with_zero_days(self):
        """Due at midnight UTC today; the check at noon is past it"""
        outcome = reconcile_installment(make_installment(due_date=date(2024, 6, 15)), NOW, FEES)
        assert outcome.installment.status == InstallmentStatus.OVERDUE
        assert outcome.installment.days_overdue == 0
        assert outcome.installment.late_fee == Decimal('0')
    
    @pytest.mark.parametrize("status,amount_paid", [
        (InstallmentStatus.PAID, "1000.00"),
        (InstallmentStatus.PENDING, "1000.00"),
        (InstallmentStatus.PARTIAL, "400.00"),
    ])
    def test_settled_and_partial_untouched(self, status, amount_paid):
        installment = make_installment(due_date=date(2024, 5, 6), status=status,
                                       amount_paid=amount_paid)
        assert not reconcile_installment(installment, NOW, FEES).changed
    
    def test_fee_is_on_outstanding_amount(self):
        installment = make_installment(due_date=date(2024, 5, 6), status=InstallmentStatus.OVERDUE,
                                       amount_paid="600.00", days_overdue=40)
        outcome = reconcile_installment(installment, NOW, FEES)
        assert outcome.installment.late_fee == Decimal('11.00')  # 400 * 2.75%
    
    def test_days_overdue_never_negative(self):
        installment = make_installment(due_date=date(2024, 7, 1))
        assert days_overdue_at(installment, NOW) == 0
        assert days_overdue_at(installment, NOW + timedelta(days=20)) == 4


class TestRepaymentReconciler:
    """Test persisting reconciliation across a whole loan"""
    
    def test_reconcile_loan_persists_and_audits(self, tenant, loan_manager, effects):
        loan = loan_manager.originate_loan(tenant.id, "cust-1", Decimal('10000'),
                                           Decimal('12'), 12, date(2024, 4, 6))
        installments = loan_manager.get_installments(loan.id)
        reconciler = RepaymentReconciler(loan_manager, effects)
        
        result = reconciler.reconcile_loan(loan, installments, NOW, FEES)
        
        # May 6 (40 days) and Jun 6 (9 days) are past due
        assert result.transitions == 2
        assert result.writes == 2
        assert result.changed
        
        stored = loan_manager.get_installments(loan.id)
        assert [i.status for i in stored[:3]] == [
            InstallmentStatus.OVERDUE, InstallmentStatus.OVERDUE, InstallmentStatus.PENDING
        ]
        assert stored[0].days_overdue == 40
        assert stored[1].days_overdue == 9
        assert result.late_fees_assessed == stored[0].late_fee + stored[1].late_fee
        
        overdue_audits = effects.entries("repayment_overdue")
        assert len(overdue_audits) == 2
        assert overdue_audits[0].metadata["loan_id"] == loan.id
        assert overdue_audits[0].metadata["month"] == 1
    
    def test_rerun_writes_nothing(self, tenant, loan_manager, effects):
        loan = loan_manager.originate_loan(tenant.id, "cust-1", Decimal('10000'),
                                           Decimal('12'), 12, date(2024, 4, 6))
        reconciler = RepaymentReconciler(loan_manager, effects)
        reconciler.reconcile_loan(loan, loan_manager.get_installments(loan.id), NOW, FEES)
        audits_before = len(effects.audits)
        
        result = reconciler.reconcile_loan(loan, loan_manager.get_installments(loan.id), NOW, FEES)
        
        assert result.writes == 0
        assert result.transitions == 0
        assert result.late_fees_assessed == Decimal('0.00')
        assert len(effects.audits) == audits_before
