"""
Advance credit summary per tenant.
"""

from typing import Any, Dict

from condo_billing.core.money import money_sum, q2


def advance_balance_summary(repos, tenant_id: str) -> Dict[str, Any]:
    """
    Units of a tenant that hold advance credit, with totals.

    Returns:
        Dict with total_units_with_advance, total_advance_dues,
        total_advance_utilities and the per-unit rows (by unit number)
    """
    balances = repos.advances.list_with_credit(tenant_id)
    return {
        "total_units_with_advance": len(balances),
        "total_advance_dues": q2(money_sum(b.advance_dues for b in balances)),
        "total_advance_utilities": q2(money_sum(b.advance_utilities for b in balances)),
        "units": [
            {
                "unit_id": b.unit_id,
                "unit_number": b.unit.unit_number,
                "advance_dues": q2(b.advance_dues),
                "advance_utilities": q2(b.advance_utilities),
            }
            for b in balances
        ],
    }
