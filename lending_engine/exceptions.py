"""
Domain exceptions raised by the lending engine
"""

from typing import Optional


class LendingError(Exception):
    """Base class for all lending engine errors"""


class TenantNotFoundError(LendingError):
    def __init__(self, tenant_id: str):
        super().__init__(f"Tenant {tenant_id} not found")
        self.tenant_id = tenant_id


class LoanNotFoundError(LendingError):
    def __init__(self, loan_id: str):
        super().__init__(f"Loan {loan_id} not found")
        self.loan_id = loan_id


class CollectionCaseNotFoundError(LendingError):
    def __init__(self, case_id: str):
        super().__init__(f"Collection case {case_id} not found")
        self.case_id = case_id


class LoanValidationError(LendingError):
    """Raised when loan or payment input violates tenant rules"""


class InvalidLoanStateError(LendingError):
    """Raised when an operation is not allowed in the loan's current status"""

    def __init__(self, loan_id: str, status: str, operation: Optional[str] = None):
        message = f"Loan {loan_id} is {status}"
        if operation:
            message += f", cannot {operation}"
        super().__init__(message)
        self.loan_id = loan_id
        self.status = status


class NotificationError(LendingError):
    """Raised when a notification cannot be rendered or delivered"""
