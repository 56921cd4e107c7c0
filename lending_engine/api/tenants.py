"""
Tenant and tenant settings endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .schemas import CreateTenantRequest, LoanSettingsUpdate
from .system import LendingSystem, get_lending_system, valid_tenant
from ..audit import AuditEventType
from ..effects import AuditEntry


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tenant(
    request: CreateTenantRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Register a lending agency"""
    try:
        tenant = system.tenant_manager.create_tenant(
            name=request.name,
            code=request.code,
            display_name=request.display_name,
            description=request.description,
            contact_email=request.contact_email
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    
    system.effects.audit(tenant.id, AuditEntry(
        action=AuditEventType.TENANT_CREATED,
        target_id=tenant.id,
        target_type="tenant",
        metadata={"code": tenant.code}
    ))
    return {
        "tenant_id": tenant.id,
        "code": tenant.code,
        "message": "Tenant created successfully"
    }


@router.get("")
async def list_tenants(system: LendingSystem = Depends(get_lending_system)):
    """List tenants"""
    return {
        "tenants": [
            {"id": t.id, "name": t.name, "code": t.code, "is_active": t.is_active}
            for t in system.tenant_manager.list_tenants()
        ]
    }


@router.get("/{tenant_id}")
async def get_tenant(
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get tenant details"""
    tenant = system.tenant_manager.get_tenant(tenant_id)
    return {
        "id": tenant.id,
        "name": tenant.name,
        "code": tenant.code,
        "display_name": tenant.display_name,
        "description": tenant.description,
        "is_active": tenant.is_active,
        "contact_email": tenant.contact_email
    }


@router.get("/{tenant_id}/settings/loan")
async def get_loan_settings(
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Effective loan settings, defaults filled in"""
    return system.settings_provider.get_loan_settings(tenant_id).to_dict()


@router.put("/{tenant_id}/settings/loan")
async def update_loan_settings(
    request: LoanSettingsUpdate,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Update some or all loan settings"""
    changes = request.model_dump(exclude_none=True)
    settings = system.settings_provider.update_loan_settings(tenant_id, **changes)
    system.effects.audit(tenant_id, AuditEntry(
        action=AuditEventType.TENANT_SETTINGS_UPDATED,
        target_id=tenant_id,
        target_type="tenant",
        metadata=changes
    ))
    return settings.to_dict()
