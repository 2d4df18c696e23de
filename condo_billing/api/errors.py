"""
Maps billing errors to HTTP responses.
"""

from fastapi import HTTPException

from condo_billing.core.errors import (
    BillingError,
    InconsistentStateError,
    InsufficientFundsError,
    LockedBillError,
    ValidationError,
)


def http_error(error: BillingError) -> HTTPException:
    """
    Converts a billing error into an HTTPException.

    ValidationError -> 400, LockedBillError -> 409, InsufficientFundsError -> 422
    (with the itemized list), InconsistentStateError -> 500.
    """
    if isinstance(error, InsufficientFundsError):
        return HTTPException(status_code=422, detail={"message": str(error), "errors": error.errors})
    if isinstance(error, LockedBillError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, InconsistentStateError):
        print(f"[ERROR] Inconsistent billing state: {error}")
        return HTTPException(status_code=500, detail=f"Inconsistent billing state: {error}")
    return HTTPException(status_code=500, detail=str(error))
