"""
Shared fixtures for the lending engine tests
"""

import threading
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from lending_engine.clock import FixedClock
from lending_engine.collections import CollectionsManager
from lending_engine.effects import Effects
from lending_engine.engine import LoanLifecycleEngine
from lending_engine.loans import Installment, InstallmentStatus, LoanManager
from lending_engine.settings import TenantSettingsProvider
from lending_engine.storage import InMemoryStorage
from lending_engine.tenancy import TenantManager


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class RecordingEffects(Effects):
    """Keeps every audit entry and notification in memory"""
    
    def __init__(self):
        self.audits = []
        self.notifications = []
        self._lock = threading.Lock()
    
    def audit(self, tenant_id, entry):
        with self._lock:
            self.audits.append((tenant_id, entry))
    
    def notify(self, tenant_id, customer_id, template, data):
        with self._lock:
            self.notifications.append((tenant_id, customer_id, template, data))
    
    def actions(self):
        return [entry.action.value for _, entry in self.audits]
    
    def entries(self, action):
        return [entry for _, entry in self.audits if entry.action.value == action]


def make_installment(month=1, due_date=date(2024, 5, 1), amount_due="1000.00",
                     amount_paid="0.00", status=InstallmentStatus.PENDING,
                     late_fee="0.00", days_overdue=0, loan_id="loan-1"):
    """Build an Installment without going through storage"""
    return Installment(
        id=f"{loan_id}-inst-{month}",
        created_at=NOW,
        updated_at=NOW,
        tenant_id="tenant-1",
        loan_id=loan_id,
        month=month,
        due_date=due_date,
        amount_due=Decimal(amount_due),
        principal_component=Decimal(amount_due),
        interest_component=Decimal('0.00'),
        remaining_balance=Decimal('0.00'),
        amount_paid=Decimal(amount_paid),
        late_fee=Decimal(late_fee),
        status=status,
        days_overdue=days_overdue
    )


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def effects():
    return RecordingEffects()


@pytest.fixture
def tenant_manager(storage):
    return TenantManager(storage)


@pytest.fixture
def tenant(tenant_manager):
    return tenant_manager.create_tenant(name="Acme Lending", code="ACME", tenant_id="tenant-1")


@pytest.fixture
def settings_provider(tenant_manager):
    return TenantSettingsProvider(tenant_manager)


@pytest.fixture
def loan_manager(storage, settings_provider, effects, clock):
    return LoanManager(storage, settings_provider, effects, clock)


@pytest.fixture
def collections_manager(storage, loan_manager, effects, clock):
    return CollectionsManager(storage, loan_manager, effects, clock)


@pytest.fixture
def engine(loan_manager, settings_provider, collections_manager, effects, clock):
    return LoanLifecycleEngine(
        loan_manager,
        settings_provider,
        collections_manager=collections_manager,
        effects=effects,
        clock=clock,
        max_workers=4
    )
