"""
Audit Trail Module

Hash-chained immutable audit log with SHA-256 for tamper detection.
Every automated loan and repayment transition is logged here.
"""

import hashlib
import json
import threading
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal
import uuid

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    # Loan lifecycle events
    LOAN_ORIGINATED = "loan_originated"
    LOAN_APPLICATION_SUBMITTED = "loan_application_submitted"
    LOAN_DISBURSED = "loan_disbursed"
    LOAN_DELETED = "loan_deleted"
    LOAN_STATUS_AUTO_UPDATE = "loan_status_auto_update"
    LOAN_AUTO_APPROVED = "loan_auto_approved"
    LOAN_AUTO_REJECTED = "loan_auto_rejected"
    
    # Repayment events
    REPAYMENT_OVERDUE = "repayment_overdue"
    REPAYMENT_RECORDED = "repayment_recorded"
    
    # Collections events
    COLLECTION_CASE_OPENED = "collection_case_opened"
    COLLECTION_CASE_UPDATED = "collection_case_updated"
    
    # Tenant events
    TENANT_CREATED = "tenant_created"
    TENANT_SETTINGS_UPDATED = "tenant_settings_updated"
    
    # System events
    PORTFOLIO_RUN_COMPLETED = "portfolio_run_completed"


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event with hash chaining for tamper detection
    """
    event_type: AuditEventType
    entity_type: str  # loan, installment, collection_case, tenant
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    tenant_id: Optional[str] = None
    actor: Optional[str] = None  # "system" for automation, otherwise a user id
    
    def __post_init__(self):
        if self.metadata:
            self.metadata = _json_safe(self.metadata)
    
    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this event
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'tenant_id': self.tenant_id,
            'actor': self.actor,
            'metadata': self.metadata
        }
        
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()
    
    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage with proper enum serialization"""
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        return result
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        """Create AuditEvent from dictionary with proper enum deserialization"""
        data = dict(data)
        if isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        if isinstance(data['event_type'], str):
            data['event_type'] = AuditEventType(data['event_type'])
        return cls(**data)


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """
    
    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._last_hash: Optional[str] = None
        self._sequence = 0
        self._lock = threading.Lock()  # Serializes chaining across worker threads
        self._load_last_hash()
    
    def _load_last_hash(self) -> None:
        """Load the hash of the most recent audit event"""
        events = self.storage.load_all(self.table_name)
        if events:
            latest = max(events, key=lambda x: (x.get('created_at', ''), x.get('sequence', 0)))
            self._last_hash = latest.get('current_hash')
            self._sequence = max(e.get('sequence', 0) for e in events)
    
    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
        actor: Optional[str] = None
    ) -> AuditEvent:
        """
        Log an audit event with hash chaining
        
        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited
            entity_id: ID of the entity
            metadata: Additional event-specific data
            tenant_id: Tenant the entity belongs to
            actor: "system" for automated transitions, otherwise the acting user
            
        Returns:
            Created AuditEvent
        """
        with self._lock:
            now = datetime.now(timezone.utc)
            
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=self._last_hash or "",
                current_hash="",
                tenant_id=tenant_id,
                actor=actor,
                metadata=metadata or {}
            )
            event.current_hash = event.calculate_hash()
            
            # Sequence keeps chain order stable when timestamps collide
            self._sequence += 1
            record = event.to_dict()
            record['sequence'] = self._sequence
            self.storage.save(self.table_name, event.id, record)
            
            self._last_hash = event.current_hash
            return event
    
    def _load_events(self, filters: Optional[Dict[str, Any]] = None) -> List[AuditEvent]:
        records = self.storage.find(self.table_name, filters or {})
        records.sort(key=lambda x: (x.get('created_at', ''), x.get('sequence', 0)))
        events = []
        for data in records:
            data = dict(data)
            data.pop('sequence', None)
            events.append(AuditEvent.from_dict(data))
        return events
    
    def get_events_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """Get all audit events for a specific entity, oldest first"""
        events = self._load_events({'entity_type': entity_type, 'entity_id': entity_id})
        if limit:
            events = events[-limit:]  # Most recent N events
        return events
    
    def get_events_by_type(
        self,
        event_type: AuditEventType,
        tenant_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """Get audit events of one type, optionally scoped to a tenant"""
        filters: Dict[str, Any] = {'event_type': event_type.value}
        if tenant_id:
            filters['tenant_id'] = tenant_id
        events = self._load_events(filters)
        if limit:
            events = events[-limit:]
        return events
    
    def get_all_events(self, tenant_id: Optional[str] = None) -> List[AuditEvent]:
        """Get all audit events sorted by creation time"""
        return self._load_events({'tenant_id': tenant_id} if tenant_id else None)
    
    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain
        
        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }
        
        events = self._load_events()
        result['total_events'] = len(events)
        
        previous_hash = ""
        for i, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': i,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': i,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash
        
        return result
    
    def count_events(self) -> int:
        """Get total number of audit events"""
        return self.storage.count(self.table_name)
