"""
Side effects of automated transitions

Business logic records audit entries and customer notifications through an
Effects object. Both operations are fire-and-forget: StoreEffects logs and
swallows failures so they never affect loan state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .audit import AuditTrail, AuditEventType
from .notifications import NotificationDispatcher
from .logging_config import get_logger

logger = get_logger("lending.effects")

SYSTEM_ACTOR = "system"


@dataclass
class AuditEntry:
    """One audit record to append"""
    action: AuditEventType
    target_id: str
    target_type: str = "loan"
    actor: str = SYSTEM_ACTOR
    metadata: Dict[str, Any] = field(default_factory=dict)


class Effects(ABC):
    """Audit and notification sink"""
    
    @abstractmethod
    def audit(self, tenant_id: str, entry: AuditEntry) -> None:
        pass
    
    @abstractmethod
    def notify(self, tenant_id: str, customer_id: str, template: str, data: Dict[str, Any]) -> None:
        pass


class NullEffects(Effects):
    """Discards every effect"""
    
    def audit(self, tenant_id: str, entry: AuditEntry) -> None:
        pass
    
    def notify(self, tenant_id: str, customer_id: str, template: str, data: Dict[str, Any]) -> None:
        pass


class StoreEffects(Effects):
    """Writes to the audit trail and the notification dispatcher"""
    
    def __init__(
        self,
        audit_trail: AuditTrail,
        dispatcher: Optional[NotificationDispatcher] = None,
        enable_audit: bool = True
    ):
        self.audit_trail = audit_trail
        self.dispatcher = dispatcher
        self.enable_audit = enable_audit
    
    def audit(self, tenant_id: str, entry: AuditEntry) -> None:
        if not self.enable_audit:
            return
        try:
            self.audit_trail.log_event(
                event_type=entry.action,
                entity_type=entry.target_type,
                entity_id=entry.target_id,
                metadata=entry.metadata,
                tenant_id=tenant_id,
                actor=entry.actor
            )
        except Exception as e:
            logger.warning(f"Audit append failed for {entry.action.value}: {e}",
                           extra={'tenant_id': tenant_id, 'resource': entry.target_id})
    
    def notify(self, tenant_id: str, customer_id: str, template: str, data: Dict[str, Any]) -> None:
        if not self.dispatcher:
            return
        try:
            self.dispatcher.notify(tenant_id, customer_id, template, data)
        except Exception as e:
            logger.warning(f"Notification {template} to {customer_id} failed: {e}",
                           extra={'tenant_id': tenant_id})
