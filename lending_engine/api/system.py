"""
Lending system container and request dependencies
"""

from typing import Optional

from fastapi import Depends, HTTPException

from ..audit import AuditTrail
from ..clock import Clock, SystemClock
from ..collections import CollectionsManager
from ..config import LendingConfig, get_config
from ..effects import StoreEffects
from ..engine import LoanLifecycleEngine
from ..loans import LoanManager
from ..notifications import create_dispatcher
from ..settings import TenantSettingsProvider
from ..storage import StorageInterface, create_storage
from ..tenancy import TenantManager


class LendingSystem:
    """Lending engine with all components wired to one storage backend"""
    
    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Clock] = None,
        config: Optional[LendingConfig] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.storage_backend, self.config.database_path)
        self.clock = clock or SystemClock()
        
        self.audit_trail = AuditTrail(self.storage)
        self.tenant_manager = TenantManager(self.storage)
        self.settings_provider = TenantSettingsProvider(self.tenant_manager)
        
        dispatcher = None
        if self.config.enable_notifications:
            dispatcher = create_dispatcher(
                self.storage,
                webhook_url=self.config.notification_webhook_url,
                webhook_timeout=self.config.notification_webhook_timeout
            )
        self.dispatcher = dispatcher
        self.effects = StoreEffects(self.audit_trail, dispatcher,
                                    enable_audit=self.config.enable_audit_logging)
        
        self.loan_manager = LoanManager(
            self.storage, self.settings_provider, self.effects, self.clock,
            batch_size=self.config.write_batch_size
        )
        self.collections_manager = CollectionsManager(
            self.storage, self.loan_manager, self.effects, self.clock
        )
        self.engine = LoanLifecycleEngine(
            self.loan_manager,
            self.settings_provider,
            collections_manager=self.collections_manager,
            effects=self.effects,
            clock=self.clock,
            max_workers=self.config.max_workers,
            run_timeout_seconds=self.config.run_timeout_seconds,
            sync_collections=self.config.sync_collections_on_run
        )


# Global lending system instance, created on first use
lending_system: Optional[LendingSystem] = None


def get_lending_system() -> LendingSystem:
    global lending_system
    if lending_system is None:
        lending_system = LendingSystem()
    return lending_system


def valid_tenant(tenant_id: str, system: LendingSystem = Depends(get_lending_system)) -> str:
    """Path dependency: the tenant in the URL must exist"""
    if not system.tenant_manager.get_tenant(tenant_id):
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant_id
