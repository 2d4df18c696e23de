"""
Integration tests for PaymentManager (SQLite in memory).
"""

import pytest
from datetime import date
from decimal import Decimal

from condo_billing.core.errors import InsufficientFundsError, ValidationError
from condo_billing.models import (
    AdvanceTarget, AllocationStrategy, Bill, BillPayment, BillStatus, Payment,
    PaymentStatus, UnitAdvanceBalance
)
from condo_billing.services.billing.allocation import ManualAllocation, verify_bill_ledger
from condo_billing.services.billing.assembler import BillComponents, assemble_bill
from condo_billing.services.payments.manager import PaymentManager

PAYMENT_DATE = date(2026, 1, 10)


def add_bill(db, unit, billing_month: str, dues: str = "1000", electric: str = "0", water: str = "0"):
    """Helper that saves an UNPAID bill for the unit."""
    bill = assemble_bill(
        unit_id=unit.id,
        billing_month=billing_month,
        components=BillComponents(
            dues_amount=Decimal(dues),
            electric_amount=Decimal(electric),
            water_amount=Decimal(water),
        ),
        bill_number=f"MT-{billing_month.replace('-', '')}-{unit.id:04d}",
    )
    db.add(bill)
    db.commit()
    return bill


def advance_of(db, unit) -> UnitAdvanceBalance:
    return db.query(UnitAdvanceBalance).filter_by(unit_id=unit.id).one()


class TestRecordPayment:

    def test_oldest_bill_paid_first(self, db, unit):
        older = add_bill(db, unit, "2025-10")
        newer = add_bill(db, unit, "2025-11")

        receipt = PaymentManager(db).record_payment(unit.id, Decimal("1500"), PAYMENT_DATE, or_number="OR-1001")

        assert receipt.payment.id is not None
        assert receipt.payment.status == PaymentStatus.CONFIRMED
        assert older.status == BillStatus.PAID
        assert newer.status == BillStatus.PARTIAL
        assert newer.balance == Decimal("500.00")
        assert db.query(BillPayment).count() == 2
        verify_bill_ledger(older)
        verify_bill_ledger(newer)

    def test_overflow_credited_to_advance(self, db, unit):
        add_bill(db, unit, "2025-10")

        receipt = PaymentManager(db).record_payment(unit.id, Decimal("1250"), PAYMENT_DATE)

        assert receipt.payment.advance_dues_created == Decimal("250.00")
        assert advance_of(db, unit).advance_dues == Decimal("250.00")

    def test_overflow_to_utilities(self, db, unit):
        add_bill(db, unit, "2025-10")

        PaymentManager(db).record_payment(
            unit.id, Decimal("1250"), PAYMENT_DATE, advance_target=AdvanceTarget.UTILITIES
        )

        advance = advance_of(db, unit)
        assert advance.advance_utilities == Decimal("250.00")
        assert advance.advance_dues == Decimal("0.00")

    def test_explicit_advance_never_touches_bills(self, db, unit):
        bill = add_bill(db, unit, "2025-10")

        PaymentManager(db).record_payment(
            unit.id, Decimal("600"), PAYMENT_DATE, advance_dues_amount=Decimal("100")
        )

        assert bill.paid_amount == Decimal("500.00")
        assert advance_of(db, unit).advance_dues == Decimal("100.00")

    def test_overdue_bills_receive_payments(self, db, unit):
        bill = add_bill(db, unit, "2025-10")
        bill.status = BillStatus.OVERDUE
        db.commit()

        PaymentManager(db).record_payment(unit.id, Decimal("1000"), PAYMENT_DATE)

        assert bill.status == BillStatus.PAID

    def test_by_component(self, db, unit):
        bill = add_bill(db, unit, "2025-10", dues="500", electric="300", water="200")

        receipt = PaymentManager(db).record_payment(
            unit.id, Decimal("300"), PAYMENT_DATE,
            strategy=AllocationStrategy.BY_COMPONENT,
            hints={"electric": Decimal("300")},
        )

        row = receipt.payment.bill_payments[0]
        assert row.electric_amount == Decimal("300.00")
        assert row.dues_amount == Decimal("0.00")
        assert bill.balance == Decimal("700.00")

    def test_manual(self, db, unit):
        add_bill(db, unit, "2025-10")
        newer = add_bill(db, unit, "2025-11")

        PaymentManager(db).record_payment(
            unit.id, Decimal("400"), PAYMENT_DATE,
            strategy=AllocationStrategy.MANUAL,
            manual=[ManualAllocation(bill_id=newer.id, dues=Decimal("400"))],
        )

        assert newer.paid_amount == Decimal("400.00")

    def test_bill_payment_rows_stored(self, db, unit):
        """Test: the ledger holds against the database, not just the session."""
        older = add_bill(db, unit, "2025-10")
        newer = add_bill(db, unit, "2025-11")
        PaymentManager(db).record_payment(unit.id, Decimal("1500"), PAYMENT_DATE)

        db.expire_all()

        rows = db.query(BillPayment).order_by(BillPayment.bill_id).all()
        assert [row.total_amount for row in rows] == [Decimal("1000.00"), Decimal("500.00")]
        assert [row.bill_status_before for row in rows] == [BillStatus.UNPAID, BillStatus.UNPAID]
        for bill_id in (older.id, newer.id):
            verify_bill_ledger(db.get(Bill, bill_id))

    def test_second_payment_splits_remaining_components(self, db, unit):
        bill = add_bill(db, unit, "2025-10", dues="500", electric="500")
        manager = PaymentManager(db)
        manager.record_payment(
            unit.id, Decimal("500"), PAYMENT_DATE,
            strategy=AllocationStrategy.BY_COMPONENT,
            hints={"electric": Decimal("500")},
        )
        db.expire_all()

        receipt = manager.record_payment(unit.id, Decimal("250"), PAYMENT_DATE)

        components = receipt.allocation.allocations[0].components
        assert components["dues"] == Decimal("250.00")
        assert components["electric"] == Decimal("0.00")
        assert db.get(Bill, bill.id).paid_amount == Decimal("750.00")


class TestRecordPaymentErrors:

    def test_manual_insufficient_funds_rolls_back(self, db, unit):
        bill = add_bill(db, unit, "2025-10")

        with pytest.raises(InsufficientFundsError) as exc_info:
            PaymentManager(db).record_payment(
                unit.id, Decimal("100"), PAYMENT_DATE,
                strategy=AllocationStrategy.MANUAL,
                manual=[ManualAllocation(bill_id=bill.id, dues=Decimal("400"))],
            )

        assert len(exc_info.value.errors) == 1
        assert db.query(Payment).count() == 0
        assert db.get(Bill, bill.id).paid_amount == Decimal("0.00")

    def test_duplicate_or_number(self, db, unit):
        add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        manager.record_payment(unit.id, Decimal("100"), PAYMENT_DATE, or_number="OR-2001")

        with pytest.raises(ValidationError):
            manager.record_payment(unit.id, Decimal("100"), PAYMENT_DATE, or_number="OR-2001")

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount(self, db, unit, amount):
        with pytest.raises(ValidationError):
            PaymentManager(db).record_payment(unit.id, Decimal(amount), PAYMENT_DATE)

    def test_unknown_unit(self, db):
        with pytest.raises(ValidationError):
            PaymentManager(db).record_payment(999, Decimal("100"), PAYMENT_DATE)

    def test_advances_above_total(self, db, unit):
        with pytest.raises(ValidationError):
            PaymentManager(db).record_payment(
                unit.id, Decimal("100"), PAYMENT_DATE, advance_util_amount=Decimal("150")
            )

    def test_component_amounts_must_match_total(self, db, unit):
        add_bill(db, unit, "2025-10")
        with pytest.raises(ValidationError):
            PaymentManager(db).record_payment(
                unit.id, Decimal("500"), PAYMENT_DATE,
                strategy=AllocationStrategy.BY_COMPONENT,
                hints={"dues": Decimal("300")},
            )

    def test_unknown_component(self, db, unit):
        with pytest.raises(ValidationError):
            PaymentManager(db).record_payment(
                unit.id, Decimal("100"), PAYMENT_DATE, hints={"parking": Decimal("100")}
            )


class TestVoid:

    def test_void_restores_bills_and_advance(self, db, unit):
        older = add_bill(db, unit, "2025-10")
        newer = add_bill(db, unit, "2025-11")
        manager = PaymentManager(db)
        payment = manager.record_payment(unit.id, Decimal("2300"), PAYMENT_DATE).payment

        result = manager.void_payment(payment.id)

        assert result.total_reversed == Decimal("2000.00")
        assert result.is_partial is False
        for bill in (older, newer):
            assert bill.paid_amount == Decimal("0.00")
            assert bill.status == BillStatus.UNPAID
        assert advance_of(db, unit).advance_dues == Decimal("0.00")
        saved = db.get(Payment, payment.id)
        assert saved.status == PaymentStatus.CANCELLED
        assert saved.remarks == "VOIDED"
        assert len(saved.bill_payments) == 2

    def test_void_with_consumed_advance(self, db, unit):
        add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        payment = manager.record_payment(unit.id, Decimal("1500"), PAYMENT_DATE).payment
        advance = advance_of(db, unit)
        advance.advance_dues = Decimal("100")  # 400 already used on a later bill
        db.commit()

        result = manager.void_payment(payment.id)

        assert result.is_partial is True
        assert result.advance_dues_shortfall == Decimal("400.00")
        assert advance_of(db, unit).advance_dues == Decimal("0.00")

    def test_void_from_new_session(self, db, session_factory, unit):
        """Test: a payment recorded in one session can be voided from another."""
        add_bill(db, unit, "2025-10")
        payment_id = PaymentManager(db).record_payment(unit.id, Decimal("1200"), PAYMENT_DATE).payment.id

        other = session_factory()
        try:
            result = PaymentManager(other).void_payment(payment_id)
        finally:
            other.close()

        assert result.total_reversed == Decimal("1000.00")
        assert result.advance_dues_reversed == Decimal("200.00")
        assert result.is_partial is False
        db.expire_all()
        assert db.get(Payment, payment_id).status == PaymentStatus.CANCELLED
        assert advance_of(db, unit).advance_dues == Decimal("0.00")

    def test_void_restores_overdue(self, db, unit):
        bill = add_bill(db, unit, "2025-10")
        bill.status = BillStatus.OVERDUE
        db.commit()
        manager = PaymentManager(db)
        payment = manager.record_payment(unit.id, Decimal("1000"), PAYMENT_DATE).payment
        assert bill.status == BillStatus.PAID

        result = manager.void_payment(payment.id)

        assert bill.status == BillStatus.OVERDUE
        assert bill.balance == Decimal("1000.00")
        assert result.reversals[0].status_after == BillStatus.OVERDUE

    def test_void_twice(self, db, unit):
        add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        payment = manager.record_payment(unit.id, Decimal("500"), PAYMENT_DATE).payment
        manager.void_payment(payment.id)

        with pytest.raises(ValidationError):
            manager.void_payment(payment.id)

    def test_unknown_payment(self, db):
        with pytest.raises(ValidationError):
            PaymentManager(db).void_payment(12345)

    def test_voided_payment_ignored_by_ledger(self, db, unit):
        bill = add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        first = manager.record_payment(unit.id, Decimal("300"), PAYMENT_DATE).payment
        manager.record_payment(unit.id, Decimal("200"), PAYMENT_DATE)

        manager.void_payment(first.id)

        assert bill.paid_amount == Decimal("200.00")
        verify_bill_ledger(bill)


class TestReapply:

    def test_applied_payment_left_untouched(self, db, unit):
        bill = add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        payment = manager.record_payment(unit.id, Decimal("400"), PAYMENT_DATE).payment

        receipt = manager.reapply_payment(payment.id)

        assert receipt.allocation.total_allocated == Decimal("400.00")
        assert bill.paid_amount == Decimal("400.00")
        assert db.query(BillPayment).count() == 1

    def test_voided_payment_not_reapplied(self, db, unit):
        add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        payment = manager.record_payment(unit.id, Decimal("400"), PAYMENT_DATE).payment
        manager.void_payment(payment.id)

        with pytest.raises(ValidationError):
            manager.reapply_payment(payment.id)


class TestUnitLock:

    def test_unit_locked_before_first_payment(self, db, unit, monkeypatch):
        """Test: the unit row is locked even when no advance balance row exists yet."""
        add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        locks = []
        lock = manager.repos.units.lock

        def recording_lock(unit_id):
            locks.append((unit_id, manager.repos.advances.get_for_unit(unit_id)))
            return lock(unit_id)

        monkeypatch.setattr(manager.repos.units, "lock", recording_lock)

        manager.record_payment(unit.id, Decimal("400"), PAYMENT_DATE)

        assert locks == [(unit.id, None)]
        assert advance_of(db, unit).advance_dues == Decimal("0.00")

    def test_void_locks_unit(self, db, unit, monkeypatch):
        add_bill(db, unit, "2025-10")
        manager = PaymentManager(db)
        payment = manager.record_payment(unit.id, Decimal("400"), PAYMENT_DATE).payment
        locks = []
        lock = manager.repos.units.lock

        def recording_lock(unit_id):
            locks.append(unit_id)
            return lock(unit_id)

        monkeypatch.setattr(manager.repos.units, "lock", recording_lock)

        manager.void_payment(payment.id)

        assert locks == [unit.id]
