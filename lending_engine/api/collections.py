"""
Collections endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .schemas import AssignCaseRequest, CaseStatusRequest, CollectionNoteRequest, case_response, to_json
from .system import LendingSystem, get_lending_system, valid_tenant
from ..collections import CasePriority, CaseStatus


router = APIRouter()


def _case_status(value: str) -> CaseStatus:
    try:
        return CaseStatus(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown case status: {value}")


def _case_priority(value: str) -> CasePriority:
    try:
        return CasePriority(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown case priority: {value}")


@router.post("/sync")
async def sync_collection_cases(
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Open or refresh cases for delinquent loans"""
    return to_json(system.collections_manager.sync_collection_cases(tenant_id))


@router.get("/cases")
async def list_collection_cases(
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = None,
    assigned_to: Optional[str] = None,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """List collection cases, most overdue first"""
    case_status = _case_status(status_filter) if status_filter else None
    case_priority = _case_priority(priority) if priority else None
    cases = system.collections_manager.list_cases(tenant_id, case_status, case_priority, assigned_to)
    return {"cases": [case_response(case) for case in cases]}


@router.get("/cases/{case_id}")
async def get_collection_case(
    case_id: str,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get a collection case"""
    return case_response(system.collections_manager.require_case(tenant_id, case_id))


@router.post("/cases/{case_id}/notes")
async def add_collection_note(
    case_id: str,
    request: CollectionNoteRequest,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Append a note to a case"""
    case = system.collections_manager.add_note(tenant_id, case_id, request.text, request.author)
    return case_response(case)


@router.post("/cases/{case_id}/assign")
async def assign_collection_case(
    case_id: str,
    request: AssignCaseRequest,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Assign a collector to a case"""
    case = system.collections_manager.assign_case(tenant_id, case_id, request.assignee)
    return case_response(case)


@router.put("/cases/{case_id}/status")
async def update_collection_case_status(
    case_id: str,
    request: CaseStatusRequest,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Change a case's status, e.g. to resolved"""
    case = system.collections_manager.update_case_status(
        tenant_id, case_id, _case_status(request.status)
    )
    return case_response(case)
