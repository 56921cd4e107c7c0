"""
Multi-Tenancy Support Module

Each lending agency is a tenant. Loans, installments, collection cases and
audit events carry the owning tenant_id; the active tenant for the current
execution context is tracked with contextvars so log lines can be tagged.
"""

import contextvars
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

from .storage import StorageInterface
from .exceptions import TenantNotFoundError


@dataclass
class Tenant:
    """Tenant data class representing a lending agency"""
    id: str
    name: str
    code: str  # Unique short code, e.g., "ACME_LENDING"
    display_name: str
    description: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    settings: Dict[str, Any] = field(default_factory=dict)  # Tenant-specific config overrides
    contact_email: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'display_name': self.display_name,
            'description': self.description,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'settings': self.settings,
            'contact_email': self.contact_email
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tenant':
        """Create Tenant from dictionary"""
        data = dict(data)
        if isinstance(data.get('created_at'), str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if isinstance(data.get('updated_at'), str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        return cls(**data)


# Tenant context using contextvars
_current_tenant = contextvars.ContextVar('current_tenant', default=None)


def get_current_tenant() -> Optional[str]:
    """Get the current tenant ID for this context"""
    return _current_tenant.get()


@contextmanager
def tenant_context(tenant_id: str):
    """Context manager for temporary tenant switching"""
    token = _current_tenant.set(tenant_id)
    try:
        yield
    finally:
        _current_tenant.reset(token)


class TenantManager:
    """Registry of lending agencies"""
    
    TENANT_TABLE = "tenants"
    
    def __init__(self, storage: StorageInterface):
        self.storage = storage
    
    def create_tenant(self, name: str, code: str, display_name: Optional[str] = None,
                      description: str = "",
                      settings: Optional[Dict[str, Any]] = None,
                      contact_email: Optional[str] = None,
                      tenant_id: Optional[str] = None) -> Tenant:
        """Create a new tenant"""
        if not tenant_id:
            tenant_id = str(uuid.uuid4())
        
        if self.get_tenant_by_code(code):
            raise ValueError(f"Tenant code '{code}' already exists")
        
        tenant = Tenant(
            id=tenant_id,
            name=name,
            code=code,
            display_name=display_name or name,
            description=description,
            settings=settings or {},
            contact_email=contact_email
        )
        
        self.storage.save(self.TENANT_TABLE, tenant.id, tenant.to_dict())
        return tenant
    
    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        """Get tenant by ID"""
        data = self.storage.load(self.TENANT_TABLE, tenant_id)
        if data:
            return Tenant.from_dict(data)
        return None
    
    def require_tenant(self, tenant_id: str) -> Tenant:
        """Get tenant by ID or raise TenantNotFoundError"""
        tenant = self.get_tenant(tenant_id)
        if not tenant:
            raise TenantNotFoundError(tenant_id)
        return tenant
    
    def get_tenant_by_code(self, code: str) -> Optional[Tenant]:
        """Get tenant by code"""
        tenants = self.storage.find(self.TENANT_TABLE, {'code': code})
        if tenants:
            return Tenant.from_dict(tenants[0])
        return None
    
    def list_tenants(self, is_active: Optional[bool] = None) -> List[Tenant]:
        """List all tenants, optionally filtered by active status"""
        filters = {}
        if is_active is not None:
            filters['is_active'] = is_active
        
        tenant_data = self.storage.find(self.TENANT_TABLE, filters)
        return [Tenant.from_dict(data) for data in tenant_data]
    
    def update_tenant(self, tenant_id: str, **kwargs) -> Optional[Tenant]:
        """Update tenant fields"""
        tenant = self.get_tenant(tenant_id)
        if not tenant:
            return None
        
        for key, value in kwargs.items():
            if hasattr(tenant, key):
                setattr(tenant, key, value)
        
        tenant.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.TENANT_TABLE, tenant.id, tenant.to_dict())
        return tenant
