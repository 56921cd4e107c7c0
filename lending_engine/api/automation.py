"""
Automation engine endpoints: manual portfolio runs and risk reports
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .schemas import to_json
from .system import LendingSystem, get_lending_system, valid_tenant


router = APIRouter()


@router.post("/run")
async def run_portfolio(
    timeout_seconds: Optional[float] = None,
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Run the lifecycle engine once over the tenant's portfolio"""
    stats = system.engine.process_tenant_portfolio(tenant_id, run_timeout_seconds=timeout_seconds)
    return stats.to_dict()


@router.get("/defaults")
async def detect_defaults(
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Loans meeting default rules and loans at risk"""
    return to_json(system.engine.detect_defaults(tenant_id))


@router.get("/ageing")
async def analyze_loan_ageing(
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Overdue amounts bucketed by days overdue"""
    return to_json(system.engine.analyze_loan_ageing(tenant_id))


@router.get("/overdue-summary")
async def get_overdue_summary(
    tenant_id: str = Depends(valid_tenant),
    system: LendingSystem = Depends(get_lending_system)
):
    """Overdue installment totals"""
    return to_json(system.engine.get_overdue_summary(tenant_id))
