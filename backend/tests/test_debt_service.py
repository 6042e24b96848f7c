"""
Debt ledger tests: payments, overdue sweep, statistics and reminders.
"""

from datetime import timedelta

import pytest

from bilkro.extensions import db, mailer
from bilkro.models import Debt, Report
from bilkro.errors import (
    DebtAlreadyPaidError,
    DebtNotFoundError,
    InvalidAmountError,
    OverPaymentError,
    ValidationError,
)
from bilkro.services import cart_service, checkout_service, debt_service
from bilkro.services.debt_service import derive_debt_status
from bilkro.time_utils import utcnow


@pytest.fixture
def open_debt(user, make_product):
    """Debt left by a 100.00 sale with 40.00 paid at checkout."""
    product = make_product(selling_price_cents=5000, quantity=5)
    cart_service.add_item(user.id, product.id, 2)
    result = checkout_service.checkout(user, payment_method="cash", amount_paid_cents=4000)
    return result.debt


def _set_due(debt, when):
    debt.due_date = when
    db.session.commit()


class TestDeriveStatus:

    def test_paid_when_nothing_remains(self):
        assert derive_debt_status(0, utcnow() - timedelta(days=5)) == "paid"

    def test_overdue_after_due_date(self):
        assert derive_debt_status(100, utcnow() - timedelta(days=1)) == "overdue"

    def test_current_before_due_date(self):
        assert derive_debt_status(100, utcnow() + timedelta(days=1)) == "current"


class TestRecordPayment:

    def test_payment_settles_debt_and_report(self, open_debt):
        debt = debt_service.record_payment(open_debt.id, 6000)

        assert debt.remaining_amount_cents == 0
        assert debt.amount_paid_cents == 10000
        assert debt.status == "paid"
        assert [p.amount_cents for p in debt.payments] == [4000, 6000]

        report = db.session.get(Report, debt.report_id)
        assert report.payment_status == "paid"
        assert report.amount_paid_cents == 10000
        assert report.remaining_balance_cents == 0

    def test_partial_payment_keeps_debt_open(self, open_debt):
        debt = debt_service.record_payment(open_debt.id, 1000, payment_method="card", notes="first")

        assert debt.remaining_amount_cents == 5000
        assert debt.status == "current"
        assert debt.amount_paid_cents + debt.remaining_amount_cents == debt.original_amount_cents
        assert debt.payments[-1].payment_method == "card"
        assert debt.payments[-1].notes == "first"
        assert db.session.get(Report, debt.report_id).payment_status == "partial"

    def test_overpayment_is_refused(self, open_debt):
        with pytest.raises(OverPaymentError) as exc_info:
            debt_service.record_payment(open_debt.id, 6001)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["remaining_amount_cents"] == 6000
        assert db.session.get(Debt, open_debt.id).remaining_amount_cents == 6000
        assert len(db.session.get(Debt, open_debt.id).payments) == 1

    @pytest.mark.parametrize("amount", [0, -100, "100", 10.5, True, None])
    def test_invalid_amounts(self, open_debt, amount):
        with pytest.raises(InvalidAmountError):
            debt_service.record_payment(open_debt.id, amount)

    def test_already_paid(self, open_debt):
        debt_service.record_payment(open_debt.id, 6000)
        with pytest.raises(DebtAlreadyPaidError):
            debt_service.record_payment(open_debt.id, 1)

    def test_unknown_debt(self, user):
        with pytest.raises(DebtNotFoundError):
            debt_service.record_payment(9999, 100)

    def test_other_customer_cannot_pay(self, open_debt, other_user):
        with pytest.raises(DebtNotFoundError):
            debt_service.record_payment(open_debt.id, 100, user=other_user)

    def test_admin_can_pay_any_debt(self, open_debt, admin):
        debt = debt_service.record_payment(open_debt.id, 100, user=admin)
        assert debt.remaining_amount_cents == 5900
        assert debt.payments[-1].recorded_by_user_id == admin.id

    def test_payment_on_overdue_debt_keeps_overdue_until_settled(self, open_debt):
        _set_due(open_debt, utcnow() - timedelta(days=3))
        debt_service.sweep_overdue_debts()

        debt = debt_service.record_payment(open_debt.id, 1000)
        assert debt.status == "overdue"

        debt = debt_service.record_payment(open_debt.id, 5000)
        assert debt.status == "paid"


class TestOverdueSweep:

    def test_sweep_flags_past_due(self, open_debt):
        _set_due(open_debt, utcnow() - timedelta(days=1))

        assert debt_service.sweep_overdue_debts() == 1
        assert db.session.get(Debt, open_debt.id).status == "overdue"

    def test_sweep_is_idempotent(self, open_debt):
        _set_due(open_debt, utcnow() - timedelta(days=1))

        debt_service.sweep_overdue_debts()
        assert debt_service.sweep_overdue_debts() == 0

    def test_sweep_ignores_debts_not_yet_due(self, open_debt):
        assert debt_service.sweep_overdue_debts() == 0
        assert db.session.get(Debt, open_debt.id).status == "current"

    def test_sweep_never_touches_paid_debts(self, open_debt):
        debt_service.record_payment(open_debt.id, 6000)
        _set_due(db.session.get(Debt, open_debt.id), utcnow() - timedelta(days=10))

        assert debt_service.sweep_overdue_debts() == 0
        assert db.session.get(Debt, open_debt.id).status == "paid"

    def test_recompute_repairs_stale_status(self, open_debt):
        debt = db.session.get(Debt, open_debt.id)
        debt.due_date = utcnow() - timedelta(days=2)
        db.session.commit()

        result = debt_service.recompute_debt_statuses()

        assert result == {"checked": 1, "updated": 1}
        assert db.session.get(Debt, open_debt.id).status == "overdue"


class TestDebtQueries:

    def test_get_debt_hides_other_users_debts(self, open_debt, other_user, admin):
        with pytest.raises(DebtNotFoundError):
            debt_service.get_debt(open_debt.id, user=other_user)
        assert debt_service.get_debt(open_debt.id, user=admin).id == open_debt.id

    def test_find_debt_for_report(self, open_debt):
        assert debt_service.find_debt_for_report(open_debt.report_id).id == open_debt.id

    def test_statistics(self, open_debt, user):
        _set_due(open_debt, utcnow() - timedelta(days=1))

        stats = debt_service.get_debt_statistics()

        assert stats["total_debt_cents"] == 6000
        assert stats["active_debt_count"] == 1
        assert stats["overdue_amount_cents"] == 6000
        assert stats["overdue_count"] == 1
        assert stats["overdue_percentage"] == 100.0
        assert debt_service.get_debt_statistics(user_id=user.id + 1000)["total_debt_cents"] == 0

    def test_overdue_report_buckets(self, user, make_product):
        now = utcnow()
        product = make_product(selling_price_cents=1000, quantity=20)
        debts = []
        for _ in range(3):
            cart_service.add_item(user.id, product.id, 1)
            debts.append(checkout_service.checkout(user, payment_method="credit").debt)

        for debt, days in zip(debts, (5, 45, 100)):
            debt.due_date = now - timedelta(days=days)
        db.session.commit()

        report = debt_service.get_overdue_report(now=now)

        assert report["count"] == 3
        assert report["total_overdue_cents"] == 3000
        assert report["groups"]["1-30"]["count"] == 1
        assert report["groups"]["31-60"]["count"] == 1
        assert report["groups"]["61-90"]["count"] == 0
        assert report["groups"]["90+"]["amount_cents"] == 1000

    def test_list_debts_rejects_unknown_sort(self, open_debt):
        with pytest.raises(ValidationError):
            debt_service.list_debts(sort_by="password")

    def test_update_due_date_moves_status(self, open_debt):
        debt = debt_service.update_debt(open_debt.id, due_date=utcnow() - timedelta(days=1), notes="call")
        assert debt.status == "overdue"
        assert debt.notes == "call"


class TestReminders:

    def test_reminder_is_emailed(self, open_debt, user):
        debt_service.send_reminder(open_debt.id)

        assert len(mailer.outbox) == 1
        message = mailer.outbox[0]
        assert message["To"] == user.email
        assert message["Subject"] == "Payment Reminder - Bilkro"
        assert "60.00" in message.get_body(preferencelist=("html",)).get_content()

    def test_no_reminder_for_paid_debt(self, open_debt):
        debt_service.record_payment(open_debt.id, 6000)
        with pytest.raises(DebtAlreadyPaidError):
            debt_service.send_reminder(open_debt.id)
        assert mailer.outbox == []
