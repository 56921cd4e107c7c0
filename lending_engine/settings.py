"""
Tenant Loan Settings

Per-tenant loan configuration stored under Tenant.settings["loan"]. Keys a
tenant has not set fall back to DEFAULT_LOAN_SETTINGS. The engine resolves
settings once per run and treats them as read-only.
"""

from dataclasses import dataclass, asdict, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from .late_fees import LateFeeConfig
from .tenancy import TenantManager
from .exceptions import LoanValidationError
from .logging_config import get_logger

logger = get_logger("lending.settings")

INTEREST_METHODS = ("simple", "compound")


@dataclass(frozen=True)
class TenantLoanSettings:
    """Loan configuration for one tenant"""
    default_interest_rate: Decimal = Decimal('15')
    grace_period_days: int = 7
    late_fee_rate: Decimal = Decimal('2.5')
    max_late_fee_rate: Decimal = Decimal('25')
    min_loan_amount: Decimal = Decimal('1000')
    max_loan_amount: Decimal = Decimal('1000000')
    default_loan_duration: int = 12
    interest_calculation_method: str = "simple"   # Reported to clients only; schedules are always annuity
    auto_approve_below: int = 25
    auto_reject_at_or_above: int = 75
    
    def __post_init__(self):
        if self.min_loan_amount > self.max_loan_amount:
            raise LoanValidationError("min_loan_amount cannot exceed max_loan_amount")
        if self.auto_approve_below > self.auto_reject_at_or_above:
            raise LoanValidationError("auto_approve_below cannot exceed auto_reject_at_or_above")
        if self.interest_calculation_method not in INTEREST_METHODS:
            raise LoanValidationError(
                f"interest_calculation_method must be one of {', '.join(INTEREST_METHODS)}"
            )
        if self.default_loan_duration < 1:
            raise LoanValidationError("default_loan_duration must be at least 1 month")
        if self.grace_period_days < 0 or self.late_fee_rate < 0 or self.max_late_fee_rate < 0:
            raise LoanValidationError("Late fee settings cannot be negative")
    
    @property
    def late_fee_config(self) -> LateFeeConfig:
        return LateFeeConfig(
            grace_period_days=self.grace_period_days,
            late_fee_rate=self.late_fee_rate,
            max_late_fee_rate=self.max_late_fee_rate
        )
    
    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result
    
    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'TenantLoanSettings':
        """Build settings from stored values, ignoring unknown keys"""
        return DEFAULT_LOAN_SETTINGS.merged(data or {})
    
    def merged(self, changes: Dict[str, Any]) -> 'TenantLoanSettings':
        """Return a copy with the given keys overridden and coerced to field types"""
        coerced = {}
        for f in fields(self):
            if f.name not in changes or changes[f.name] is None:
                continue
            value = changes[f.name]
            try:
                if f.type in (Decimal, 'Decimal'):
                    value = Decimal(str(value))
                elif f.type in (int, 'int'):
                    value = int(value)
                else:
                    value = str(value)
            except (InvalidOperation, TypeError, ValueError):
                raise LoanValidationError(f"Invalid value for {f.name}: {value!r}")
            coerced[f.name] = value
        return replace(self, **coerced)


DEFAULT_LOAN_SETTINGS = TenantLoanSettings()


class TenantSettingsProvider:
    """Reads and updates tenant loan settings"""
    
    SETTINGS_KEY = "loan"
    
    def __init__(self, tenant_manager: TenantManager):
        self.tenant_manager = tenant_manager
    
    def get_loan_settings(self, tenant_id: str) -> TenantLoanSettings:
        """Settings for a tenant, defaults for anything unset"""
        tenant = self.tenant_manager.get_tenant(tenant_id)
        if not tenant or not tenant.settings.get(self.SETTINGS_KEY):
            logger.debug("No loan settings for tenant, using defaults",
                         extra={'tenant_id': tenant_id})
            return DEFAULT_LOAN_SETTINGS
        
        try:
            return TenantLoanSettings.from_dict(tenant.settings[self.SETTINGS_KEY])
        except LoanValidationError as e:
            logger.warning(f"Invalid stored loan settings, using defaults: {e}",
                           extra={'tenant_id': tenant_id})
            return DEFAULT_LOAN_SETTINGS
    
    def get_late_fee_config(self, tenant_id: str) -> LateFeeConfig:
        return self.get_loan_settings(tenant_id).late_fee_config
    
    def update_loan_settings(self, tenant_id: str, **changes) -> TenantLoanSettings:
        """Validate and persist a partial settings update"""
        tenant = self.tenant_manager.require_tenant(tenant_id)
        current = self.get_loan_settings(tenant_id)
        updated = current.merged(changes)
        
        settings = dict(tenant.settings)
        settings[self.SETTINGS_KEY] = updated.to_dict()
        self.tenant_manager.update_tenant(tenant_id, settings=settings)
        return updated
