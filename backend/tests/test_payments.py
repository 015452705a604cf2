# Overview: Pytest coverage for payments and the EN_COURS -> TERMINE transition.

import pytest

from gestock.errors import InvalidTransitionError, NotFoundError, ValidationError
from gestock.models import Payment, Sale
from gestock.services import payment_service, sales_service


@pytest.fixture
def open_sale(db_session, scope_a, item_a, item_a2):
    """Sale worth 295.00 TTC (29500 cents), nothing paid."""
    return sales_service.create_sale(scope_a, None, [
        {"product_id": item_a.id, "quantity": 2},
        {"product_id": item_a2.id, "quantity": 1},
    ])


class TestAddPayment:
    """Recording money received."""

    def test_completing_payment_closes_sale(self, db_session, scope_a, open_sale):
        """200 of 295 paid, then 95 more: TERMINE."""
        first = payment_service.add_payment(scope_a, open_sale.id, 20000, "ORANGE_MONEY", "OM-123")
        assert first.sale.status == "EN_COURS"
        assert first.sale.amount_paid_cents == 20000
        assert first.sale.invoice.status == "PENDING"

        second = payment_service.add_payment(scope_a, open_sale.id, 9500)

        sale = second.sale
        assert sale.status == "TERMINE"
        assert sale.amount_paid_cents == 29500
        assert sale.invoice.status == "PAID"

    def test_payment_fields(self, db_session, scope_a, open_sale):
        payment = payment_service.add_payment(scope_a, open_sale.id, 1500, "mtn_momo", "MOMO-9")

        assert payment.amount_cents == 1500
        assert payment.method == "MTN_MOMO"
        assert payment.reference == "MOMO-9"
        assert payment.status == "COMPLETED"
        assert payment.recorded_by == "alice"
        assert payment.tenant_id == open_sale.tenant_id

    def test_method_defaults_to_cash(self, db_session, scope_a, open_sale):
        assert payment_service.add_payment(scope_a, open_sale.id, 100).method == "CASH"

    def test_overpayment_is_recorded(self, db_session, scope_a, open_sale):
        payment = payment_service.add_payment(scope_a, open_sale.id, 30000)

        assert payment.sale.status == "TERMINE"
        assert payment.sale.amount_paid_cents == 30000

    def test_payment_on_completed_sale_keeps_it_completed(self, db_session, scope_a, open_sale):
        payment_service.add_payment(scope_a, open_sale.id, 29500)
        payment = payment_service.add_payment(scope_a, open_sale.id, 100)

        assert payment.sale.status == "TERMINE"
        assert payment.sale.amount_paid_cents == 29600

    @pytest.mark.parametrize("amount", [0, -100, 10.5, "12.00", None, False])
    def test_invalid_amount_rejected(self, db_session, scope_a, open_sale, amount):
        with pytest.raises(ValidationError):
            payment_service.add_payment(scope_a, open_sale.id, amount)

        assert db_session.query(Payment).count() == 0

    def test_unknown_method_rejected(self, db_session, scope_a, open_sale):
        with pytest.raises(ValidationError):
            payment_service.add_payment(scope_a, open_sale.id, 100, "BITCOIN")

    def test_cancelled_sale_refuses_payment(self, db_session, scope_a, open_sale):
        sales_service.cancel_sale(scope_a, open_sale.id)

        with pytest.raises(InvalidTransitionError):
            payment_service.add_payment(scope_a, open_sale.id, 100)

        db_session.expire_all()
        assert db_session.get(Sale, open_sale.id).amount_paid_cents == 0

    def test_unknown_sale(self, db_session, scope_a):
        with pytest.raises(NotFoundError):
            payment_service.add_payment(scope_a, "missing", 100)

    def test_status_rule(self, db_session, open_sale):
        assert payment_service.status_for_amount(open_sale, 29499) == "EN_COURS"
        assert payment_service.status_for_amount(open_sale, 29500) == "TERMINE"


class TestListPayments:

    def test_list_payments_in_order(self, db_session, scope_a, open_sale):
        payment_service.add_payment(scope_a, open_sale.id, 100, reference="first")
        payment_service.add_payment(scope_a, open_sale.id, 200, reference="second")

        payments = payment_service.list_payments(scope_a, open_sale.id)

        assert [p.reference for p in payments] == ["first", "second"]
