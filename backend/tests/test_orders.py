"""Order ledger: creation, pricing snapshot and admin workflow labels."""

from decimal import Decimal

import pytest

from errors import AlreadyFulfilledError, NotFoundError, ValidationError
from models.audit_log import AuditAction
from models.invoice import Invoice
from models.order import Order, OrderStatus
from services import catalog
from services import orders as ledger
from services.fulfillment import fulfill_order
from services.orders import LineItemRequest


def _lines(*pairs):
    return [LineItemRequest(product_id=pid, quantity=qty) for pid, qty in pairs]


class TestCreateOrder:

    def test_total_is_priced_at_creation(self, db_session, make_product, customer, customer_ctx, recorder):
        coffee = make_product(name="Coffee", price="12.50", stock=10)
        milk = make_product(name="Milk", price="1.20", stock=10)

        order = ledger.create_order(
            db_session, customer.id, _lines((coffee.id, 2), (milk.id, 3)), "  leave at desk ",
            context=customer_ctx, audit=recorder,
        )

        assert order.status == OrderStatus.PENDING
        assert order.total_price == Decimal("28.60")
        assert order.notes == "leave at desk"
        assert [(i.product_id, i.quantity) for i in order.items] == [(coffee.id, 2), (milk.id, 3)]
        assert recorder.actions() == [AuditAction.ORDER_CREATE]

    def test_empty_order_rejected(self, db_session, customer, customer_ctx, recorder):
        with pytest.raises(ValidationError, match="Order must include items."):
            ledger.create_order(db_session, customer.id, [], context=customer_ctx, audit=recorder)
        assert db_session.query(Order).count() == 0

    @pytest.mark.parametrize("quantity", [0, -2, 1.5, True])
    def test_bad_quantity_rejected(self, db_session, make_product, customer, customer_ctx, recorder, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            ledger.create_order(
                db_session, customer.id, _lines((product.id, quantity)), context=customer_ctx, audit=recorder,
            )

    def test_missing_product_contributes_nothing(self, db_session, make_product, customer, customer_ctx, recorder):
        product = make_product(price="4.00")

        order = ledger.create_order(
            db_session, customer.id, _lines((product.id, 1), (9999, 5)), context=customer_ctx, audit=recorder,
        )

        assert order.total_price == Decimal("4.00")
        assert len(order.items) == 2
        view = ledger.build_view(db_session, order)
        assert [line.product_exists for line in view.lines] == [True, False]
        assert view.lines[1].unit_price is None

    def test_total_unaffected_by_later_price_change(
        self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder,
    ):
        product = make_product(price="2.00")
        order = ledger.create_order(
            db_session, customer.id, _lines((product.id, 3)), context=customer_ctx, audit=recorder,
        )

        catalog.update_product(db_session, product.id, {"price": "5.00"}, context=admin_ctx, audit=recorder)
        db_session.expire_all()

        assert ledger.get_order(db_session, order.id).total_price == Decimal("6.00")


class TestListing:

    def test_list_for_customer_only_returns_own(
        self, db_session, make_product, customer, other_customer, customer_ctx, recorder,
    ):
        product = make_product()
        mine = ledger.create_order(db_session, customer.id, _lines((product.id, 1)), context=customer_ctx, audit=recorder)
        ledger.create_order(db_session, other_customer.id, _lines((product.id, 1)), context=customer_ctx, audit=recorder)

        assert [o.id for o in ledger.list_for_customer(db_session, customer.id)] == [mine.id]
        assert len(ledger.list_all(db_session)) == 2

    def test_get_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            ledger.get_order(db_session, 404)


class TestStatusAndDelete:

    def test_admin_sets_workflow_label(self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder):
        product = make_product()
        order = ledger.create_order(db_session, customer.id, _lines((product.id, 1)), context=customer_ctx, audit=recorder)

        updated = ledger.set_status(db_session, order.id, "on-hold", context=admin_ctx, audit=recorder)

        assert updated.status == OrderStatus.ON_HOLD
        assert recorder.entries[-1].changes == {"before": {"status": "pending"}, "after": {"status": "on-hold"}}

    def test_fulfilled_cannot_be_set_by_hand(self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder):
        product = make_product()
        order = ledger.create_order(db_session, customer.id, _lines((product.id, 1)), context=customer_ctx, audit=recorder)

        with pytest.raises(ValidationError):
            ledger.set_status(db_session, order.id, "Fulfilled", context=admin_ctx, audit=recorder)

    def test_unknown_status_rejected(self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder):
        product = make_product()
        order = ledger.create_order(db_session, customer.id, _lines((product.id, 1)), context=customer_ctx, audit=recorder)

        with pytest.raises(ValidationError):
            ledger.set_status(db_session, order.id, "shipped", context=admin_ctx, audit=recorder)

    def test_fulfilled_order_status_is_final(self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder):
        product = make_product(stock=5)
        order = ledger.create_order(db_session, customer.id, _lines((product.id, 1)), context=customer_ctx, audit=recorder)
        fulfill_order(db_session, order.id, context=admin_ctx, audit=recorder)

        with pytest.raises(AlreadyFulfilledError):
            ledger.set_status(db_session, order.id, "pending", context=admin_ctx, audit=recorder)

    def test_delete_keeps_invoice(self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder):
        product = make_product(stock=5)
        order = ledger.create_order(db_session, customer.id, _lines((product.id, 1)), context=customer_ctx, audit=recorder)
        invoice_id = fulfill_order(db_session, order.id, context=admin_ctx, audit=recorder).invoice.id

        ledger.delete_order(db_session, order.id, context=admin_ctx, audit=recorder)
        db_session.expire_all()

        assert db_session.get(Order, order.id) is None
        invoice = db_session.get(Invoice, invoice_id)
        assert invoice is not None
        assert invoice.order_id is None
        assert recorder.actions()[-1] == AuditAction.ORDER_DELETE
