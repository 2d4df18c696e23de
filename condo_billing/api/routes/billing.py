"""
API endpoints for bill generation and bill management.
All endpoints have prefix /api/billing/
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from condo_billing.api.errors import http_error
from condo_billing.core.database import get_db, transaction
from condo_billing.core.errors import BillingError
from condo_billing.core.money import format_money
from condo_billing.models.billing import Bill, COMPONENT_FIELDS
from condo_billing.models.enums import UnitType
from condo_billing.repositories.sql import Repositories
from condo_billing.services.billing.adjustments import (
    AdjustmentEntry, apply_sp_assessment, clear_sp_assessment, list_adjustments, save_adjustments
)
from condo_billing.services.billing.assembler import edit_bill_components
from condo_billing.services.billing.charges import water_tier_table
from condo_billing.services.billing.generator import generate_bills_for_period, rates_for_tenant
from condo_billing.services.billing.lifecycle import lock_bill, mark_overdue
from condo_billing.services.billing.opening_balance import (
    OpeningBalanceEntry, list_opening_balances, save_opening_balances
)
from condo_billing.services.payments.advances import advance_balance_summary

router = APIRouter(prefix="/api/billing", tags=["billing"])


class GenerateBillsRequest(BaseModel):
    """Model for a bill generation run."""
    tenant_id: str
    billing_month: str  # 'YYYY-MM'
    preview: bool = True
    regenerate: bool = False


class BillUpdate(BaseModel):
    """Manual correction of bill components (unlocked bills only)."""
    electric_amount: Optional[Decimal] = None
    water_amount: Optional[Decimal] = None
    dues_amount: Optional[Decimal] = None
    parking_fee: Optional[Decimal] = None
    sp_assessment: Optional[Decimal] = None
    penalty_amount: Optional[Decimal] = None
    other_charges: Optional[Decimal] = None
    discounts: Optional[Decimal] = None
    advance_dues_applied: Optional[Decimal] = None
    advance_util_applied: Optional[Decimal] = None
    remarks: Optional[str] = None


class OverdueSweepRequest(BaseModel):
    as_of: Optional[date] = None
    tenant_id: Optional[str] = None


class AdjustmentItem(BaseModel):
    unit_id: int
    sp_assessment: Decimal = Decimal("0")
    discounts: Decimal = Decimal("0")
    other_charges: Decimal = Decimal("0")
    remarks: Optional[str] = None


class AdjustmentsSave(BaseModel):
    """Model for saving the adjustments of one period."""
    tenant_id: str
    billing_month: str  # 'YYYY-MM'
    adjustments: List[AdjustmentItem]


class SpAssessmentRequest(BaseModel):
    tenant_id: str
    billing_month: str


class OpeningBalanceItem(BaseModel):
    unit_id: int
    amount: Decimal
    remarks: Optional[str] = None


class OpeningBalancesSave(BaseModel):
    """Model for saving opening balances (legacy debt)."""
    tenant_id: str
    billing_month: str  # Period the debt is booked in
    balances: List[OpeningBalanceItem]


def bill_to_dict(bill: Bill) -> dict:
    """Bill as JSON (money as 2-decimal strings)."""
    data = {
        "id": bill.id,
        "bill_number": bill.bill_number,
        "unit_id": bill.unit_id,
        "billing_month": bill.billing_month,
        "bill_type": bill.bill_type.value,
        "statement_date": bill.statement_date.isoformat() if bill.statement_date else None,
        "due_date": bill.due_date.isoformat() if bill.due_date else None,
        "status": bill.status.value,
        "is_locked": bool(bill.is_locked),
        "locked_at": bill.locked_at.isoformat() if bill.locked_at else None,
        "remarks": bill.remarks,
    }
    for name in COMPONENT_FIELDS + ("total_amount", "paid_amount", "balance"):
        data[name] = format_money(getattr(bill, name))
    return data


def _money_strings(row: dict) -> dict:
    return {key: format_money(value) if isinstance(value, Decimal) else value for key, value in row.items()}


def _get_bill(db: Session, bill_id: int) -> Bill:
    bill = db.get(Bill, bill_id)
    if not bill:
        raise HTTPException(status_code=404, detail="Bill not found")
    return bill


@router.get("/rates")
def get_rates(tenant_id: str, db: Session = Depends(get_db)):
    """Gets the rate schedule of a tenant with both water tier tables."""
    try:
        rates = rates_for_tenant(Repositories.for_session(db), tenant_id)
    except BillingError as e:
        raise http_error(e)

    data = rates.to_dict()
    data["water_tables"] = {
        unit_type.value: [
            {key: str(value) if isinstance(value, Decimal) else value for key, value in row.items()}
            for row in water_tier_table(unit_type, rates)
        ]
        for unit_type in UnitType
    }
    return data


@router.post("/generate")
def generate_bills(request: GenerateBillsRequest, db: Session = Depends(get_db)):
    """
    Generates bills for all active units of a tenant.
    With preview=true (default) nothing is saved.
    """
    repos = Repositories.for_session(db)
    try:
        rates = rates_for_tenant(repos, request.tenant_id)
        if request.preview:
            result = generate_bills_for_period(
                repos, request.tenant_id, request.billing_month, rates, preview=True,
                regenerate=request.regenerate
            )
        else:
            with transaction(db):
                result = generate_bills_for_period(
                    repos, request.tenant_id, request.billing_month, rates, preview=False,
                    regenerate=request.regenerate
                )
    except BillingError as e:
        raise http_error(e)

    return {
        "billing_month": result.billing_month,
        "preview": result.preview,
        "summary": {
            "total_units": len(result.previews),
            "units_with_warnings": result.units_with_warnings,
            "total_amount": format_money(result.total_amount),
            "replaced": result.replaced,
        },
        "previews": [p.as_dict() for p in result.previews],
        "bills": [bill_to_dict(b) for b in result.bills],
    }


@router.get("/bills/{bill_id}")
def get_bill(bill_id: int, db: Session = Depends(get_db)):
    """Gets a single bill."""
    return bill_to_dict(_get_bill(db, bill_id))


@router.patch("/bills/{bill_id}")
def update_bill(bill_id: int, update: BillUpdate, db: Session = Depends(get_db)):
    """Corrects bill components. Locked bills return 409."""
    bill = _get_bill(db, bill_id)
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    remarks = changes.pop("remarks", None)

    try:
        with transaction(db):
            if changes:
                edit_bill_components(bill, **changes)
            if remarks is not None:
                bill.remarks = remarks
    except BillingError as e:
        raise http_error(e)

    db.refresh(bill)
    return bill_to_dict(bill)


@router.post("/bills/{bill_id}/lock")
def lock_bill_endpoint(bill_id: int, db: Session = Depends(get_db)):
    """Locks a bill after its statement was distributed to the owner."""
    bill = _get_bill(db, bill_id)
    if bill.is_locked:
        return bill_to_dict(bill)
    with transaction(db):
        lock_bill(bill)
    db.refresh(bill)
    print(f"[OK] Bill {bill.bill_number or bill.id} locked")
    return bill_to_dict(bill)


@router.post("/overdue-sweep")
def overdue_sweep(request: Optional[OverdueSweepRequest] = None, db: Session = Depends(get_db)):
    """Marks UNPAID/PARTIAL bills past their due date as OVERDUE."""
    request = request or OverdueSweepRequest()
    as_of = request.as_of or date.today()
    repos = Repositories.for_session(db)

    with transaction(db):
        changed = mark_overdue(repos.bills.list_past_due(as_of, request.tenant_id), as_of)
    print(f"[OK] Overdue sweep as of {as_of}: {len(changed)} bill(s) marked OVERDUE")
    return {
        "as_of": as_of.isoformat(),
        "marked_overdue": len(changed),
        "bill_ids": [b.id for b in changed],
    }


@router.get("/adjustments")
def get_adjustments(tenant_id: str, billing_month: str, db: Session = Depends(get_db)):
    """Gets every active unit with its adjustments for a billing period."""
    try:
        rows = list_adjustments(Repositories.for_session(db), tenant_id, billing_month)
    except BillingError as e:
        raise http_error(e)
    return [_money_strings(row) for row in rows]


@router.post("/adjustments")
def save_adjustments_endpoint(request: AdjustmentsSave, db: Session = Depends(get_db)):
    """Saves adjustments for several units. All-zero entries delete the unit's adjustment."""
    entries = [AdjustmentEntry(**item.model_dump()) for item in request.adjustments]
    try:
        with transaction(db):
            result = save_adjustments(
                Repositories.for_session(db), request.tenant_id, request.billing_month, entries
            )
    except BillingError as e:
        raise http_error(e)

    return {
        "success": True,
        "message": f"Saved {result.saved} adjustment(s) for {request.billing_month}",
        "saved": result.saved,
        "deleted": result.deleted,
    }


@router.post("/sp-assessment")
def apply_sp_assessment_endpoint(request: SpAssessmentRequest, db: Session = Depends(get_db)):
    """Applies the tenant's SP assessment to all active units for a period."""
    repos = Repositories.for_session(db)
    try:
        rates = rates_for_tenant(repos, request.tenant_id)
        with transaction(db):
            details = apply_sp_assessment(repos, request.tenant_id, request.billing_month, rates)
    except BillingError as e:
        raise http_error(e)
    return {"success": True, "details": _money_strings(details)}


@router.delete("/sp-assessment")
def clear_sp_assessment_endpoint(tenant_id: str, billing_month: str, db: Session = Depends(get_db)):
    """Removes the SP assessment from all units for a period."""
    try:
        with transaction(db):
            cleared = clear_sp_assessment(Repositories.for_session(db), tenant_id, billing_month)
    except BillingError as e:
        raise http_error(e)
    return {"success": True, "cleared": cleared}


@router.get("/opening-balance")
def get_opening_balances(tenant_id: str, db: Session = Depends(get_db)):
    """Gets every active unit with its opening balance, if saved."""
    rows = list_opening_balances(Repositories.for_session(db), tenant_id)
    return [_money_strings(row) for row in rows]


@router.post("/opening-balance")
def save_opening_balances_endpoint(request: OpeningBalancesSave, db: Session = Depends(get_db)):
    """Creates or updates opening balance bills (legacy debt)."""
    entries = [OpeningBalanceEntry(**item.model_dump()) for item in request.balances]
    try:
        with transaction(db):
            result = save_opening_balances(
                Repositories.for_session(db), request.tenant_id, request.billing_month, entries
            )
    except BillingError as e:
        raise http_error(e)

    return {
        "success": True,
        "created": result.created,
        "updated": result.updated,
        "errors": result.errors,
    }


@router.get("/advance-balances")
def get_advance_balances(tenant_id: str, db: Session = Depends(get_db)):
    """Gets the units holding advance credit, with totals."""
    summary = advance_balance_summary(Repositories.for_session(db), tenant_id)
    summary["units"] = [_money_strings(row) for row in summary["units"]]
    return _money_strings(summary)
