"""Inventory item registry: unique codes, QR links and scan history."""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from errors import DuplicateCodeError, NotFoundError, ValidationError
from models.audit_log import AuditAction
from models.inventory_item import InventoryItem, ItemStatus, ScanAction, ScanRecord
from services import inventory as registry
from services import orders as ledger
from services.orders import LineItemRequest
from utils.qr import build_scan_url, is_scan_url, render_qr_data_url

BASE_URL = "http://testserver"


def _create(db_session, product, code, ctx, recorder, **kwargs):
    return registry.create_item(
        db_session, product_id=product.id, item_code=code, base_url=BASE_URL,
        context=ctx, audit=recorder, **kwargs
    )


class TestQRCodes:

    def test_scan_url_escapes_code(self):
        assert build_scan_url("http://host:4000/", "A B/1") == "http://host:4000/api/inventory/scan/A%20B%2F1"

    def test_is_scan_url(self):
        assert is_scan_url(build_scan_url(BASE_URL, "X-1"))
        assert not is_scan_url("X-1")
        assert not is_scan_url("http://host/api/products/1")

    def test_data_url_is_png(self):
        assert render_qr_data_url("http://testserver/api/inventory/scan/X").startswith("data:image/png;base64,")


class TestCreateItem:

    def test_create_item(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()

        item = _create(db_session, product, " CB-001 ", admin_ctx, recorder, batch_number="B7")

        assert item.item_code == "CB-001"
        assert item.qr_code == f"{BASE_URL}/api/inventory/scan/CB-001"
        assert item.status == ItemStatus.AVAILABLE
        assert item.location == "warehouse"
        assert item.batch_number == "B7"
        assert [r.action for r in item.scan_history] == [ScanAction.CREATED]
        assert recorder.actions() == [AuditAction.INVENTORY_ITEM_CREATE]

    def test_duplicate_code_rejected(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        _create(db_session, product, "CB-001", admin_ctx, recorder)

        with pytest.raises(DuplicateCodeError):
            _create(db_session, product, "CB-001", admin_ctx, recorder)
        assert db_session.query(InventoryItem).count() == 1

    def test_unknown_product(self, db_session, admin_ctx, recorder):
        with pytest.raises(NotFoundError):
            registry.create_item(
                db_session, product_id=999, item_code="X", base_url=BASE_URL, context=admin_ctx, audit=recorder,
            )

    def test_blank_code_rejected(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        with pytest.raises(ValidationError):
            _create(db_session, product, "   ", admin_ctx, recorder)

    def test_concurrent_creates_with_same_code(self, db_session, session_factory, make_product, admin_ctx, recorder):
        product = make_product()
        product_id = product.id
        outcomes = []
        barrier = threading.Barrier(5)

        def worker():
            session = session_factory()
            try:
                barrier.wait()
                registry.create_item(
                    session, product_id=product_id, item_code="RACE-1", base_url=BASE_URL,
                    context=admin_ctx, audit=recorder,
                )
                outcomes.append("created")
            except DuplicateCodeError:
                outcomes.append("duplicate")
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("created") == 1
        assert outcomes.count("duplicate") == 4
        assert db_session.query(InventoryItem).filter_by(item_code="RACE-1").count() == 1


class TestBatch:

    def test_batch_reports_duplicates_without_stopping(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()

        result = registry.create_batch(
            db_session, product_id=product.id, item_codes=["A", "B", "A"], base_url=BASE_URL,
            batch_number="LOT-9", context=admin_ctx, audit=recorder,
        )

        assert [i.item_code for i in result.created] == ["A", "B"]
        assert result.errors == [{"itemCode": "A", "error": "Item code already exists"}]
        assert all(i.batch_number == "LOT-9" for i in result.created)

    def test_storage_error_on_one_code_does_not_stop_batch(
        self, db_session, make_product, admin_ctx, recorder, monkeypatch, caplog,
    ):
        product = make_product()
        insert = registry._insert_item

        def flaky_insert(db, product, code, **kwargs):
            if code == "B":
                raise OperationalError("INSERT INTO inventory_items", {}, Exception("disk I/O error"))
            return insert(db, product, code, **kwargs)

        monkeypatch.setattr(registry, "_insert_item", flaky_insert)

        result = registry.create_batch(
            db_session, product_id=product.id, item_codes=["A", "B", "C"], base_url=BASE_URL,
            context=admin_ctx, audit=recorder,
        )

        assert [i.item_code for i in result.created] == ["A", "C"]
        assert result.errors == [{"itemCode": "B", "error": "Could not store item"}]
        assert db_session.query(InventoryItem).count() == 2
        assert "Storing batch item 'B'" in caplog.text

    def test_empty_batch_rejected(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        with pytest.raises(ValidationError):
            registry.create_batch(
                db_session, product_id=product.id, item_codes=[], base_url=BASE_URL,
                context=admin_ctx, audit=recorder,
            )


class TestScanAndStatus:

    def test_each_scan_appends_history(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        _create(db_session, product, "S-1", admin_ctx, recorder)

        registry.scan(db_session, "S-1", notes="shelf check", context=admin_ctx, audit=recorder)
        item = registry.scan(db_session, "S-1", context=admin_ctx, audit=recorder)

        history = item.scan_history
        assert [r.action for r in history] == [ScanAction.CREATED, ScanAction.SCANNED, ScanAction.SCANNED]
        assert history[1].notes == "shelf check"
        assert history[1].scanned_by == admin_ctx.email

    def test_scan_unknown_code(self, db_session, admin_ctx, recorder):
        with pytest.raises(NotFoundError):
            registry.scan(db_session, "NOPE", context=admin_ctx, audit=recorder)

    def test_concurrent_scans_all_recorded(self, db_session, session_factory, make_product, admin_ctx, recorder):
        product = make_product()
        item_id = _create(db_session, product, "HOT-1", admin_ctx, recorder).id
        barrier = threading.Barrier(6)

        def worker():
            session = session_factory()
            try:
                barrier.wait()
                registry.scan(session, "HOT-1", context=admin_ctx, audit=recorder)
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        scans = db_session.query(ScanRecord).filter_by(item_id=item_id, action=ScanAction.SCANNED).count()
        assert scans == 6

    def test_status_change_writes_default_note(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        _create(db_session, product, "D-1", admin_ctx, recorder)

        item = registry.set_status(db_session, "D-1", "damaged", location=" bay 4 ", context=admin_ctx, audit=recorder)

        assert item.status == ItemStatus.DAMAGED
        assert item.location == "bay 4"
        last = item.scan_history[-1]
        assert last.action == ScanAction.DAMAGED
        assert last.notes == "Status changed from available to damaged"

    def test_available_maps_to_restocked(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        _create(db_session, product, "R-1", admin_ctx, recorder)
        registry.set_status(db_session, "R-1", "returned", context=admin_ctx, audit=recorder)

        item = registry.set_status(db_session, "R-1", "available", notes="back on shelf", context=admin_ctx, audit=recorder)

        assert [r.action for r in item.scan_history][-2:] == [ScanAction.RETURNED, ScanAction.RESTOCKED]
        assert item.scan_history[-1].notes == "back on shelf"

    def test_invalid_status_rejected(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        _create(db_session, product, "V-1", admin_ctx, recorder)
        with pytest.raises(ValidationError):
            registry.set_status(db_session, "V-1", "lost", context=admin_ctx, audit=recorder)

    def test_assign_to_order(self, db_session, make_product, customer, customer_ctx, admin_ctx, recorder):
        product = make_product()
        _create(db_session, product, "O-1", admin_ctx, recorder)
        order = ledger.create_order(
            db_session, customer.id, [LineItemRequest(product_id=product.id, quantity=1)],
            context=customer_ctx, audit=recorder,
        )

        item = registry.set_status(db_session, "O-1", "sold", order_id=order.id, context=admin_ctx, audit=recorder)

        assert item.assigned_order_id == order.id
        view = registry.build_view(db_session, item)
        assert view.order.id == order.id

    def test_assign_to_unknown_order(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        _create(db_session, product, "O-2", admin_ctx, recorder)
        with pytest.raises(NotFoundError):
            registry.set_status(db_session, "O-2", "sold", order_id=4242, context=admin_ctx, audit=recorder)


class TestQueries:

    def test_history_limit_keeps_latest(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        item = _create(db_session, product, "L-1", admin_ctx, recorder)
        for n in range(4):
            registry.scan(db_session, "L-1", notes=f"scan {n}", context=admin_ctx, audit=recorder)

        view = registry.build_view(db_session, item, history_limit=2)

        assert [r.notes for r in view.history] == ["scan 2", "scan 3"]
        assert len(registry.build_view(db_session, item).history) == 5

    def test_list_and_stats_for_product(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        for code in ("P-1", "P-2", "P-3"):
            _create(db_session, product, code, admin_ctx, recorder)
        registry.set_status(db_session, "P-2", "sold", context=admin_ctx, audit=recorder)

        assert {i.item_code for i in registry.list_for_product(db_session, product.id)} == {"P-1", "P-2", "P-3"}
        assert [i.item_code for i in registry.list_for_product(db_session, product.id, "sold")] == ["P-2"]

        stats = registry.stats_for_product(db_session, product.id)
        assert stats == {
            "available": 2, "sold": 1, "damaged": 0, "returned": 0, "in-transit": 0, "total": 3,
        }

    def test_delete_item_removes_history(self, db_session, make_product, admin_ctx, recorder):
        product = make_product()
        item_id = _create(db_session, product, "DEL-1", admin_ctx, recorder).id

        registry.delete_item(db_session, "DEL-1", context=admin_ctx, audit=recorder)

        assert db_session.query(InventoryItem).count() == 0
        assert db_session.query(ScanRecord).filter_by(item_id=item_id).count() == 0
        assert recorder.actions()[-1] == AuditAction.INVENTORY_ITEM_DELETE
