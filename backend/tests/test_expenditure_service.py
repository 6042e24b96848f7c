"""
Expenditure workflow tests.

Verifies:
- Auto approval at or below the limit
- Approve / reject / complete transitions
- Posting onto the latest report
- Owner-or-admin edits
"""

import pytest

from bilkro.extensions import db
from bilkro.models import Report
from bilkro.errors import ExpenditureStateError, ForbiddenError, ValidationError
from bilkro.services import cart_service, checkout_service, expenditure_service


def _payload(**overrides):
    payload = {
        "amount_cents": 5000,
        "description": "Printer paper",
        "employee_name": "Sam",
        "category": "supplies",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def sale_report(user, make_product):
    product = make_product(buying_price_cents=3000, selling_price_cents=5000, quantity=5)
    cart_service.add_item(user.id, product.id, 2)
    return checkout_service.checkout(user, payment_method="cash", amount_paid_cents=10000).report


class TestAutoApproval:

    def test_limit_is_inclusive(self, user):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=10000), user=user)
        assert exp.status == "approved"
        assert exp.approved_by_user_id == user.id
        assert exp.manually_approved is False

    def test_above_limit_stays_pending(self, user):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=10001), user=user)
        assert exp.status == "pending"
        assert exp.approval_date is None

    def test_missing_fields(self, user):
        with pytest.raises(ValidationError) as exc_info:
            expenditure_service.create_expenditure({"amount_cents": 100}, user=user)
        assert "description" in exc_info.value.message

    def test_non_positive_amount(self, user):
        with pytest.raises(ValidationError):
            expenditure_service.create_expenditure(_payload(amount_cents=0), user=user)

    def test_unknown_category(self, user):
        with pytest.raises(ValidationError):
            expenditure_service.create_expenditure(_payload(category="travel"), user=user)

    def test_amount_edit_reapplies_rule(self, user):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=5000), user=user)

        exp = expenditure_service.update_expenditure(exp.id, {"amount_cents": 20000}, user=user)
        assert exp.status == "pending"

        exp = expenditure_service.update_expenditure(exp.id, {"amount_cents": 3000}, user=user)
        assert exp.status == "approved"

    def test_manual_approval_survives_amount_edit(self, user, admin):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=50000), user=user)
        expenditure_service.approve_expenditure(exp.id, admin=admin)

        exp = expenditure_service.update_expenditure(exp.id, {"amount_cents": 60000}, user=user)
        assert exp.status == "approved"
        assert exp.manually_approved is True


class TestTransitions:

    def test_approve_only_pending(self, user, admin):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=100), user=user)
        with pytest.raises(ExpenditureStateError):
            expenditure_service.approve_expenditure(exp.id, admin=admin)

    def test_reject_records_reason(self, user, admin):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=50000), user=user)
        exp = expenditure_service.reject_expenditure(exp.id, admin=admin, reason="No receipt")

        assert exp.status == "rejected"
        assert "No receipt" in exp.notes
        with pytest.raises(ExpenditureStateError):
            expenditure_service.update_expenditure(exp.id, {"amount_cents": 100}, user=user)

    def test_complete_requires_approval(self, user, admin):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=50000), user=user)
        with pytest.raises(ExpenditureStateError):
            expenditure_service.complete_expenditure(exp.id, admin=admin)

    def test_completed_cannot_be_deleted(self, user, admin):
        exp = expenditure_service.create_expenditure(_payload(), user=user)
        expenditure_service.complete_expenditure(exp.id, admin=admin)
        with pytest.raises(ExpenditureStateError):
            expenditure_service.delete_expenditure(exp.id, user=admin)

    def test_only_owner_or_admin_may_edit(self, user, other_user, admin):
        exp = expenditure_service.create_expenditure(_payload(), user=user)

        with pytest.raises(ForbiddenError):
            expenditure_service.update_expenditure(exp.id, {"description": "x"}, user=other_user)
        with pytest.raises(ForbiddenError):
            expenditure_service.delete_expenditure(exp.id, user=other_user)

        exp = expenditure_service.update_expenditure(exp.id, {"description": "Toner"}, user=admin)
        assert exp.description == "Toner"


class TestPosting:

    def test_complete_posts_to_latest_sale(self, user, admin, sale_report):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=1500), user=user)
        exp = expenditure_service.complete_expenditure(exp.id, admin=admin)

        report = db.session.get(Report, sale_report.id)
        assert exp.status == "completed"
        assert exp.report_id == report.id
        assert report.report_type == "mixed"
        assert report.total_expenditures_cents == 1500
        assert report.total_revenue_cents == 10000
        assert report.net_profit_cents == report.total_profit_cents - 1500 == 2500
        assert report.expenditure_breakdown() == {"supplies": {"count": 1, "amount_cents": 1500}}

    def test_revenue_reduced_when_configured(self, app, user, admin, sale_report, monkeypatch):
        monkeypatch.setitem(app.config, "EXPENDITURES_REDUCE_REVENUE", True)

        exp = expenditure_service.create_expenditure(_payload(amount_cents=1500), user=user)
        expenditure_service.complete_expenditure(exp.id, admin=admin)

        assert db.session.get(Report, sale_report.id).total_revenue_cents == 8500

    def test_complete_without_reports_creates_expenditure_report(self, user, admin):
        exp = expenditure_service.create_expenditure(_payload(amount_cents=2000), user=user)
        exp = expenditure_service.complete_expenditure(exp.id, admin=admin)

        report = db.session.get(Report, exp.report_id)
        assert report.report_type == "expenditure"
        assert report.payment_method == "expenditure"
        assert report.total_revenue_cents == 0
        assert report.total_expenditures_cents == 2000
        assert report.net_profit_cents == -2000


class TestStatistics:

    def test_counts_approved_and_completed_only(self, user, admin):
        expenditure_service.create_expenditure(_payload(amount_cents=1000), user=user)
        completed = expenditure_service.create_expenditure(
            _payload(amount_cents=2000, category="utilities"), user=user
        )
        expenditure_service.complete_expenditure(completed.id, admin=admin)
        expenditure_service.create_expenditure(_payload(amount_cents=50000), user=user)
        rejected = expenditure_service.create_expenditure(_payload(amount_cents=60000), user=user)
        expenditure_service.reject_expenditure(rejected.id, admin=admin)

        stats = expenditure_service.get_expenditure_statistics()

        assert stats["total_amount_cents"] == 3000
        assert {row["category"]: row["amount_cents"] for row in stats["by_category"]} == {
            "supplies": 1000,
            "utilities": 2000,
        }
        assert stats["by_employee"][0]["employee_name"] == "Sam"
        assert stats["pending_count"] == 1
        assert stats["auto_approved_count"] == 1
