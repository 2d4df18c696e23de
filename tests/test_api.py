"""
API tests through FastAPI's TestClient.
"""

from datetime import date
from decimal import Decimal

from condo_billing.models import Bill, BillStatus, MeterReading, UtilityType
from condo_billing.services.billing.assembler import BillComponents, assemble_bill


def add_bill(db, unit, billing_month: str, dues: str = "1000", due: date = date(2026, 1, 6)):
    bill = assemble_bill(
        unit_id=unit.id,
        billing_month=billing_month,
        components=BillComponents(dues_amount=Decimal(dues)),
        bill_number=f"MT-{billing_month.replace('-', '')}-0001",
        due_date=due,
    )
    db.add(bill)
    db.commit()
    return bill.id


class TestRoot:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"


class TestBillingEndpoints:

    def test_rates(self, client):
        response = client.get("/api/billing/rates", params={"tenant_id": "tenant-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["electric_rate"] == "8.39"
        assert len(data["water_tables"]["RESIDENTIAL"]) == 7

    def test_generate_preview_then_commit(self, client, db, unit):
        for utility, previous, present in ((UtilityType.ELECTRIC, "1000", "1115"), (UtilityType.WATER, "50", "52")):
            db.add(MeterReading(
                unit_id=unit.id, billing_month="2025-11", utility=utility,
                previous_reading=Decimal(previous), present_reading=Decimal(present),
                consumption=Decimal(present) - Decimal(previous),
            ))
        db.commit()
        body = {"tenant_id": "tenant-1", "billing_month": "2025-12"}

        preview = client.post("/api/billing/generate", json=body)
        assert preview.status_code == 200
        assert preview.json()["summary"]["total_amount"] == "3234.85"
        assert preview.json()["previews"][0]["status"] == "DRAFT"
        assert preview.json()["bills"] == []

        committed = client.post("/api/billing/generate", json={**body, "preview": False})
        assert committed.status_code == 200
        bill = committed.json()["bills"][0]
        assert bill["bill_number"] == "MT-202512-0001"
        assert bill["total_amount"] == "3234.85"
        assert bill["status"] == "UNPAID"

        again = client.post("/api/billing/generate", json={**body, "preview": False})
        assert again.status_code == 400

    def test_invalid_billing_month(self, client):
        response = client.post(
            "/api/billing/generate", json={"tenant_id": "tenant-1", "billing_month": "2025-13"}
        )
        assert response.status_code == 400

    def test_get_bill(self, client, db, unit):
        bill_id = add_bill(db, unit, "2025-12")

        response = client.get(f"/api/billing/bills/{bill_id}")

        assert response.status_code == 200
        assert response.json()["balance"] == "1000.00"

    def test_bill_not_found(self, client):
        assert client.get("/api/billing/bills/999").status_code == 404

    def test_edit_bill(self, client, db, unit):
        bill_id = add_bill(db, unit, "2025-12")

        response = client.patch(f"/api/billing/bills/{bill_id}", json={"other_charges": "150", "remarks": "Repair"})

        assert response.status_code == 200
        assert response.json()["total_amount"] == "1150.00"
        assert response.json()["remarks"] == "Repair"

    def test_locked_bill_edit_conflict(self, client, db, unit):
        bill_id = add_bill(db, unit, "2025-12")
        assert client.post(f"/api/billing/bills/{bill_id}/lock").json()["is_locked"] is True

        response = client.patch(f"/api/billing/bills/{bill_id}", json={"water_amount": "200"})

        assert response.status_code == 409
        assert client.get(f"/api/billing/bills/{bill_id}").json()["water_amount"] == "0.00"

    def test_overdue_sweep(self, client, db, unit):
        bill_id = add_bill(db, unit, "2025-12", due=date(2026, 1, 6))

        response = client.post("/api/billing/overdue-sweep", json={"as_of": "2026-01-07", "tenant_id": "tenant-1"})

        assert response.status_code == 200
        assert response.json()["bill_ids"] == [bill_id]
        db.expire_all()
        assert db.get(Bill, bill_id).status == BillStatus.OVERDUE


class TestPaymentEndpoints:

    def test_record_and_void(self, client, db, unit):
        bill_id = add_bill(db, unit, "2025-12")

        created = client.post("/api/payments/", json={
            "unit_id": unit.id,
            "total_amount": "1200",
            "payment_date": "2026-01-05",
            "or_number": "OR-3001",
        })
        assert created.status_code == 200
        data = created.json()
        assert data["status"] == "CONFIRMED"
        assert data["advance_dues_created"] == "200.00"
        assert data["allocations"][0]["bill_id"] == bill_id
        assert data["allocations"][0]["amount"] == "1000.00"

        outstanding = client.get(f"/api/payments/outstanding/{unit.id}").json()
        assert outstanding["total_outstanding"] == "0.00"

        voided = client.delete(f"/api/payments/{data['id']}")
        assert voided.status_code == 200
        assert voided.json()["total_reversed"] == "1000.00"
        assert voided.json()["is_partial"] is False

        assert client.delete(f"/api/payments/{data['id']}").status_code == 400

    def test_manual_allocation_over_balance(self, client, db, unit):
        bill_id = add_bill(db, unit, "2025-12")

        response = client.post("/api/payments/", json={
            "unit_id": unit.id,
            "total_amount": "5000",
            "payment_date": "2026-01-05",
            "strategy": "MANUAL",
            "manual_allocations": [{"bill_id": bill_id, "dues": "1500"}],
        })

        assert response.status_code == 422
        assert len(response.json()["detail"]["errors"]) == 1

    def test_unknown_unit(self, client):
        response = client.post("/api/payments/", json={
            "unit_id": 999, "total_amount": "100", "payment_date": "2026-01-05",
        })
        assert response.status_code == 404

    def test_unknown_payment(self, client):
        assert client.delete("/api/payments/999").status_code == 404

    def test_outstanding_unknown_unit(self, client):
        assert client.get("/api/payments/outstanding/999").status_code == 404


class TestAdjustmentEndpoints:

    def test_save_and_list_adjustments(self, client, unit):
        saved = client.post("/api/billing/adjustments", json={
            "tenant_id": "tenant-1",
            "billing_month": "2025-12",
            "adjustments": [{"unit_id": unit.id, "discounts": "100", "other_charges": "25"}],
        })
        assert saved.status_code == 200
        assert saved.json()["saved"] == 1

        rows = client.get("/api/billing/adjustments", params={"tenant_id": "tenant-1", "billing_month": "2025-12"})
        assert rows.status_code == 200
        assert rows.json()[0]["discounts"] == "100.00"
        assert rows.json()[0]["other_charges"] == "25.00"

    def test_adjustments_unknown_unit(self, client):
        response = client.post("/api/billing/adjustments", json={
            "tenant_id": "tenant-1",
            "billing_month": "2025-12",
            "adjustments": [{"unit_id": 999, "discounts": "100"}],
        })
        assert response.status_code == 400

    def test_apply_and_clear_sp_assessment(self, client, unit):
        body = {"tenant_id": "tenant-1", "billing_month": "2025-12"}

        applied = client.post("/api/billing/sp-assessment", json=body)
        assert applied.status_code == 200
        assert applied.json()["details"]["rate"] == "849.10"
        assert applied.json()["details"]["created"] == 1

        preview = client.post("/api/billing/generate", json=body)
        assert preview.json()["previews"][0]["components"]["sp_assessment"] == "849.10"

        cleared = client.delete("/api/billing/sp-assessment", params=body)
        assert cleared.status_code == 200
        assert cleared.json()["cleared"] == 1

    def test_opening_balance(self, client, unit):
        saved = client.post("/api/billing/opening-balance", json={
            "tenant_id": "tenant-1",
            "billing_month": "2025-09",
            "balances": [{"unit_id": unit.id, "amount": "5000"}],
        })
        assert saved.status_code == 200
        assert saved.json()["created"] == 1

        rows = client.get("/api/billing/opening-balance", params={"tenant_id": "tenant-1"}).json()
        assert rows[0]["status"] == "saved"
        assert rows[0]["opening_balance"] == "5000.00"

        outstanding = client.get(f"/api/payments/outstanding/{unit.id}").json()
        assert outstanding["total_outstanding"] == "5000.00"
        assert outstanding["bills"][0]["bill_type"] == "OPENING_BALANCE"

    def test_opening_balance_nothing_to_save(self, client, unit):
        response = client.post("/api/billing/opening-balance", json={
            "tenant_id": "tenant-1",
            "billing_month": "2025-09",
            "balances": [{"unit_id": unit.id, "amount": "0"}],
        })
        assert response.status_code == 400

    def test_advance_balances(self, client, db, unit):
        add_bill(db, unit, "2025-12")
        client.post("/api/payments/", json={
            "unit_id": unit.id, "total_amount": "1250", "payment_date": "2026-01-05",
        })

        response = client.get("/api/billing/advance-balances", params={"tenant_id": "tenant-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_units_with_advance"] == 1
        assert data["total_advance_dues"] == "250.00"
        assert data["units"][0]["unit_number"] == "M2-2F-16"
