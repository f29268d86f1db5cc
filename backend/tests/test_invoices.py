"""Invoices issued by hand and per-customer listings."""

from decimal import Decimal

import pytest

from errors import NotFoundError
from models.audit_log import AuditAction
from models.invoice import InvoiceSendStatus
from models.product import Product
from services import catalog
from services import invoices as invoicing
from services import orders as ledger
from services.fulfillment import fulfill_order
from services.orders import LineItemRequest


def _order(db_session, customer, ctx, recorder, *pairs, notes=None):
    lines = [LineItemRequest(product_id=pid, quantity=qty) for pid, qty in pairs]
    return ledger.create_order(db_session, customer.id, lines, notes, context=ctx, audit=recorder)


class TestCreateManual:

    def test_invoice_copies_the_order_as_placed(
        self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder,
    ):
        tea = make_product(name="Tea", price="2.00", stock=10)
        order = _order(db_session, customer, customer_ctx, recorder, (tea.id, 3), notes="Invoice monthly")
        catalog.update_product(db_session, tea.id, {"price": "5.00"}, context=admin_ctx, audit=recorder)

        invoice = invoicing.create_manual(db_session, order.id, context=admin_ctx, audit=recorder)

        assert invoice.order_id == order.id
        assert invoice.customer_id == customer.id
        assert invoice.total_amount == Decimal("6.00")
        assert invoice.notes == "Invoice monthly"
        assert invoice.send_status == InvoiceSendStatus.NOT_SENT
        assert [(i.product_name, i.quantity, i.unit_price, i.line_total) for i in invoice.items] == [
            ("Tea", 3, Decimal("2.00"), Decimal("6.00")),
        ]
        assert recorder.actions()[-1] == AuditAction.INVOICE_CREATE

    def test_stock_is_left_alone(self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder):
        product = make_product(stock=4)
        order = _order(db_session, customer, customer_ctx, recorder, (product.id, 2))

        invoicing.create_manual(db_session, order.id, context=admin_ctx, audit=recorder)

        db_session.expire_all()
        assert db_session.get(Product, product.id).stock == 4

    def test_deleted_product_keeps_a_placeholder_name(
        self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder,
    ):
        product = make_product(name="Syrup", price="4.00")
        pid = product.id
        order = _order(db_session, customer, customer_ctx, recorder, (pid, 1))
        catalog.delete_product(db_session, pid, context=admin_ctx, audit=recorder)

        invoice = invoicing.create_manual(db_session, order.id, context=admin_ctx, audit=recorder)

        assert invoice.items[0].product_name == f"Product #{pid}"
        assert invoice.items[0].unit_price == Decimal("4.00")

    def test_unknown_order(self, db_session, admin_ctx, recorder):
        with pytest.raises(NotFoundError):
            invoicing.create_manual(db_session, 404, context=admin_ctx, audit=recorder)
        assert recorder.entries == []


class TestCustomerInvoices:

    def test_lists_only_that_customers_invoices(
        self, db_session, make_product, customer, other_customer, customer_ctx, admin_ctx, recorder,
    ):
        product = make_product(stock=10)
        mine = _order(db_session, customer, customer_ctx, recorder, (product.id, 1))
        theirs = ledger.create_order(
            db_session, other_customer.id, [LineItemRequest(product_id=product.id, quantity=1)],
            context=customer_ctx, audit=recorder,
        )
        first = fulfill_order(db_session, mine.id, context=admin_ctx, audit=recorder).invoice
        fulfill_order(db_session, theirs.id, context=admin_ctx, audit=recorder)
        second = invoicing.create_manual(db_session, mine.id, context=admin_ctx, audit=recorder)

        found, invoices = invoicing.customer_invoices(db_session, customer.id)

        assert found.email == customer.email
        assert [i.id for i in invoices] == [second.id, first.id]

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError) as exc_info:
            invoicing.customer_invoices(db_session, 999)
        assert exc_info.value.message == "Customer not found"
