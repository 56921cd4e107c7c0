"""
Test suite for collections module

Tests ageing buckets, case priority, case sync from overdue installments and
manual case handling.
"""

import pytest
from datetime import date
from decimal import Decimal

from lending_engine.collections import (
    AgeingBucket, CasePriority, CaseStatus, bucket_for_days, loan_delinquency,
    priority_for_days
)
from lending_engine.exceptions import CollectionCaseNotFoundError
from lending_engine.loans import InstallmentStatus, LoanStatus

from .conftest import make_installment


def overdue_loan(loan_manager, tenant_id, installments_overdue, days_overdue, status=LoanStatus.ACTIVE,
                 customer="cust-1"):
    """Book a loan and mark its first installments overdue by hand"""
    loan = loan_manager.originate_loan(tenant_id, customer, Decimal('12000'),
                                       Decimal('0'), 12, date(2024, 1, 1))
    loan.status = status
    loan_manager.save_loan(loan)
    installments = loan_manager.get_installments(loan.id)
    for installment in installments[:installments_overdue]:
        installment.status = InstallmentStatus.OVERDUE
        installment.days_overdue = days_overdue
    loan_manager.save_installments(installments[:installments_overdue])
    return loan


class TestClassification:
    """Test priority and bucket boundaries"""
    
    @pytest.mark.parametrize("days,priority", [
        (0, CasePriority.LOW), (29, CasePriority.LOW),
        (30, CasePriority.MEDIUM), (59, CasePriority.MEDIUM),
        (60, CasePriority.HIGH), (89, CasePriority.HIGH),
        (90, CasePriority.URGENT), (400, CasePriority.URGENT),
    ])
    def test_priority(self, days, priority):
        assert priority_for_days(days) == priority
    
    @pytest.mark.parametrize("days,bucket", [
        (0, AgeingBucket.CURRENT), (30, AgeingBucket.CURRENT),
        (31, AgeingBucket.DAYS_31_60), (60, AgeingBucket.DAYS_31_60),
        (61, AgeingBucket.DAYS_61_90), (90, AgeingBucket.DAYS_61_90),
        (91, AgeingBucket.DAYS_90_PLUS),
    ])
    def test_bucket(self, days, bucket):
        assert bucket_for_days(days) == bucket
    
    def test_loan_delinquency(self):
        installments = [
            make_installment(month=1, status=InstallmentStatus.OVERDUE, days_overdue=45),
            make_installment(month=2, status=InstallmentStatus.OVERDUE, days_overdue=14,
                             amount_paid="250.00"),
            make_installment(month=3),
        ]
        delinquency = loan_delinquency(installments)
        assert delinquency.days_overdue == 45
        assert delinquency.overdue_amount == Decimal('1750.00')
        assert delinquency.overdue_count == 2
    
    def test_no_delinquency(self):
        assert loan_delinquency([make_installment()]) is None


class TestCaseSync:
    """Test automated case creation and refresh"""
    
    def test_case_opened_for_overdue_loan(self, tenant, loan_manager, collections_manager, effects):
        loan = overdue_loan(loan_manager, tenant.id, 2, 45)
        
        result = collections_manager.sync_collection_cases(tenant.id)
        
        assert result == {"cases_created": 1, "cases_updated": 0, "cases_failed": 0,
                          "total_amount_overdue": Decimal('2000.00')}
        case = collections_manager.get_open_case_for_loan(loan.id)
        assert case.amount == Decimal('2000.00')
        assert case.days_overdue == 45
        assert case.priority == CasePriority.MEDIUM
        assert case.status == CaseStatus.NEW
        assert case.customer_id == "cust-1"
        assert effects.entries("collection_case_opened")
    
    def test_resync_without_change_is_quiet(self, tenant, loan_manager, collections_manager, effects):
        overdue_loan(loan_manager, tenant.id, 2, 45)
        collections_manager.sync_collection_cases(tenant.id)
        audits_before = len(effects.audits)
        
        result = collections_manager.sync_collection_cases(tenant.id)
        
        assert result["cases_created"] == 0
        assert result["cases_updated"] == 0
        assert len(effects.audits) == audits_before
    
    def test_case_refreshed_as_arrears_grow(self, tenant, loan_manager, collections_manager):
        loan = overdue_loan(loan_manager, tenant.id, 2, 45)
        collections_manager.sync_collection_cases(tenant.id)
        installments = loan_manager.get_installments(loan.id)
        for installment in installments[:3]:
            installment.status = InstallmentStatus.OVERDUE
            installment.days_overdue = 95
        loan_manager.save_installments(installments[:3])
        
        result = collections_manager.sync_collection_cases(tenant.id)
        
        assert result["cases_updated"] == 1
        case = collections_manager.get_open_case_for_loan(loan.id)
        assert case.amount == Decimal('3000.00')
        assert case.priority == CasePriority.URGENT
        assert len(collections_manager.list_cases(tenant.id)) == 1
    
    def test_resolved_case_is_not_reused(self, tenant, loan_manager, collections_manager):
        loan = overdue_loan(loan_manager, tenant.id, 1, 10)
        collections_manager.sync_collection_cases(tenant.id)
        case = collections_manager.get_open_case_for_loan(loan.id)
        collections_manager.update_case_status(tenant.id, case.id, CaseStatus.RESOLVED)
        
        result = collections_manager.sync_collection_cases(tenant.id)
        
        assert result["cases_created"] == 1
        assert len(collections_manager.list_cases(tenant.id)) == 2
    
    def test_defaulted_loan_gets_case(self, tenant, loan_manager, collections_manager):
        loan = overdue_loan(loan_manager, tenant.id, 3, 80, status=LoanStatus.DEFAULTED)
        
        assert collections_manager.sync_collection_cases(tenant.id)["cases_created"] == 1
        case = collections_manager.get_open_case_for_loan(loan.id)
        assert case.amount == Decimal('3000.00')
        assert case.priority == CasePriority.HIGH
    
    def test_case_keeps_refreshing_after_default(self, tenant, loan_manager, collections_manager):
        loan = overdue_loan(loan_manager, tenant.id, 1, 40)
        collections_manager.sync_collection_cases(tenant.id)
        
        loan.status = LoanStatus.DEFAULTED
        loan_manager.save_loan(loan)
        installments = loan_manager.get_installments(loan.id)
        for installment in installments[:3]:
            installment.status = InstallmentStatus.OVERDUE
            installment.days_overdue = 100
        loan_manager.save_installments(installments[:3])
        
        result = collections_manager.sync_collection_cases(tenant.id)
        
        assert result["cases_updated"] == 1
        case = collections_manager.get_open_case_for_loan(loan.id)
        assert case.amount == Decimal('3000.00')
        assert case.days_overdue == 100
        assert case.priority == CasePriority.URGENT
        assert len(collections_manager.list_cases(tenant.id)) == 1
    
    def test_failed_case_write_does_not_stop_sync(self, tenant, loan_manager, collections_manager,
                                                  monkeypatch):
        failing = overdue_loan(loan_manager, tenant.id, 1, 40, customer="a")
        healthy = overdue_loan(loan_manager, tenant.id, 1, 40, customer="b")
        save_case = collections_manager._save_case
        
        def flaky_save(case):
            if case.loan_id == failing.id:
                raise RuntimeError("case write failed")
            save_case(case)
        
        monkeypatch.setattr(collections_manager, "_save_case", flaky_save)
        
        result = collections_manager.sync_collection_cases(tenant.id)
        
        assert result["cases_failed"] == 1
        assert result["cases_created"] == 1
        assert collections_manager.get_open_case_for_loan(failing.id) is None
        assert collections_manager.get_open_case_for_loan(healthy.id) is not None


class TestAgeing:
    """Test ageing analysis"""
    
    def test_breakdown(self, tenant, loan_manager, collections_manager):
        overdue_loan(loan_manager, tenant.id, 1, 20, customer="a")
        overdue_loan(loan_manager, tenant.id, 2, 50, customer="b")
        overdue_loan(loan_manager, tenant.id, 4, 120, status=LoanStatus.DEFAULTED, customer="c")
        overdue_loan(loan_manager, tenant.id, 0, 0, customer="d")
        
        ageing = collections_manager.analyze_loan_ageing(tenant.id)
        
        breakdown = ageing["ageing_breakdown"]
        assert breakdown["current"] == {"count": 1, "amount": Decimal('1000.00')}
        assert breakdown["31_60"] == {"count": 1, "amount": Decimal('2000.00')}
        assert breakdown["61_90"] == {"count": 0, "amount": Decimal('0.00')}
        assert breakdown["90_plus"] == {"count": 1, "amount": Decimal('4000.00')}
        assert ageing["total_ageing_amount"] == Decimal('7000.00')


class TestCaseManagement:
    """Test manual case operations"""
    
    @pytest.fixture
    def case(self, tenant, loan_manager, collections_manager):
        loan = overdue_loan(loan_manager, tenant.id, 1, 10)
        collections_manager.sync_collection_cases(tenant.id)
        return collections_manager.get_open_case_for_loan(loan.id)
    
    def test_add_note(self, tenant, collections_manager, case):
        updated = collections_manager.add_note(tenant.id, case.id, "Called, no answer", "agent-7")
        
        stored = collections_manager.get_case(case.id, tenant.id)
        assert [n.text for n in stored.notes] == ["Called, no answer"]
        assert stored.notes[0].author == "agent-7"
        assert updated.notes == stored.notes
    
    def test_empty_note_rejected(self, tenant, collections_manager, case):
        with pytest.raises(ValueError):
            collections_manager.add_note(tenant.id, case.id, "   ", "agent-7")
    
    def test_assign_marks_contacted(self, tenant, collections_manager, case):
        collections_manager.assign_case(tenant.id, case.id, "agent-7")
        stored = collections_manager.get_case(case.id)
        assert stored.assigned_to == "agent-7"
        assert stored.status == CaseStatus.CONTACTED
    
    def test_list_by_status(self, tenant, collections_manager, case):
        collections_manager.update_case_status(tenant.id, case.id, CaseStatus.PROMISED)
        assert [c.id for c in collections_manager.list_cases(tenant.id, CaseStatus.PROMISED)] == [case.id]
        assert collections_manager.list_cases(tenant.id, CaseStatus.NEW) == []
    
    def test_other_tenant_cannot_see_case(self, collections_manager, case):
        assert collections_manager.get_case(case.id, "tenant-2") is None
        with pytest.raises(CollectionCaseNotFoundError):
            collections_manager.require_case("tenant-2", case.id)
    
    def test_list_by_priority_and_assignee(self, tenant, loan_manager, collections_manager, case):
        urgent = overdue_loan(loan_manager, tenant.id, 1, 95, customer="cust-2")
        collections_manager.sync_collection_cases(tenant.id)
        urgent_case = collections_manager.get_open_case_for_loan(urgent.id)
        collections_manager.assign_case(tenant.id, case.id, "agent-7")
        
        by_priority = collections_manager.list_cases(tenant.id, priority=CasePriority.URGENT)
        assert [c.id for c in by_priority] == [urgent_case.id]
        by_assignee = collections_manager.list_cases(tenant.id, assigned_to="agent-7")
        assert [c.id for c in by_assignee] == [case.id]
        assert collections_manager.list_cases(tenant.id, CaseStatus.NEW, assigned_to="agent-7") == []
