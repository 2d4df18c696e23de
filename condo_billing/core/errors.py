"""
Billing error taxonomy.
All errors are deterministic: the same input always fails the same way.
"""

from typing import List, Optional


class BillingError(Exception):
    """Base class for all billing engine errors."""


class ValidationError(BillingError):
    """Invalid input: negative consumption, reading regression, malformed rates."""


class InsufficientFundsError(BillingError):
    """
    A manual allocation exceeds the payment total or a bill balance.
    Carries the itemized list of every violation found.
    """

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "; ".join(self.errors))


class LockedBillError(BillingError):
    """Mutation attempted on a bill that was already distributed to the owner."""

    def __init__(self, bill_id=None, message: Optional[str] = None):
        self.bill_id = bill_id
        super().__init__(
            message
            or f"Cannot modify locked bill {bill_id}. It has been distributed to the unit owner."
        )


class InconsistentStateError(BillingError):
    """Internal invariant violation. Needs manual reconciliation."""
