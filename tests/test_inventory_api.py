from datetime import datetime

from sqlalchemy.exc import IntegrityError

from tests.fakes import FakeDriverError, compile_sql


def inventory_item(stock_code="85123A", stock=20, reorder_level=10, status="IN_STOCK"):
    return {
        "stock_code": stock_code,
        "product_name": "WHITE HANGING HEART T-LIGHT HOLDER",
        "current_stock": stock,
        "available_stock": stock,
        "reorder_level": reorder_level,
        "status": status,
    }


class TestInventoryStatus:
    def test_summary_counts_each_status(self, client, session):
        session.queue([
            inventory_item("A", 0, status="OUT_OF_STOCK"),
            inventory_item("B", 4, status="LOW_STOCK"),
            inventory_item("C", 10, status="LOW_STOCK"),
            inventory_item("D", 50),
        ])

        response = client.get("/api/retail/performance/inventory-status")

        assert response.status_code == 200
        assert response.json()["summary"] == {
            "total_items": 4,
            "out_of_stock": 1,
            "low_stock": 2,
            "in_stock": 1,
        }


class TestAdjustInventory:
    def test_unknown_stock_code_is_404(self, client, session):
        session.queue(None)

        response = client.post(
            "/api/retail/performance/adjust-inventory",
            json={"stock_code": "NOPE", "adjustment": 5},
        )

        assert response.status_code == 404
        assert session.rolled_back
        assert session.added == []

    def test_adjustment_records_movement(self, client, session):
        session.queue(42, inventory_item(stock=25))

        response = client.post(
            "/api/retail/performance/adjust-inventory",
            json={"stock_code": "85123A", "adjustment": 5, "reason": "Stock take"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["current_stock"] == 25
        movement = session.added[0]
        assert movement.product_id == 42
        assert movement.quantity_change == 5
        assert movement.reason == "Stock take"
        assert session.committed
        assert "products.stock_quantity + " in compile_sql(session.statements[0])

    def test_adjusting_below_zero_is_400(self, client, session):
        session.queue(IntegrityError("UPDATE products ...", {}, FakeDriverError("23514")))

        response = client.post(
            "/api/retail/performance/adjust-inventory",
            json={"stock_code": "85123A", "adjustment": -500},
        )

        assert response.status_code == 400
        assert session.rolled_back

    def test_adjustment_beyond_integer_range_is_400(self, client, session):
        response = client.post(
            "/api/retail/performance/adjust-inventory",
            json={"stock_code": "85123A", "adjustment": 2**31},
        )

        assert response.status_code == 400
        assert session.statements == []


class TestTriggerTest:
    def test_test_mode_reports_change_and_rolls_back(self, client, session):
        alert = {
            "stock_code": "85123A",
            "product_name": "WHITE HANGING HEART T-LIGHT HOLDER",
            "current_stock": 8,
            "reorder_level": 10,
            "alert_time": datetime(2024, 1, 1),
        }
        session.queue(inventory_item(stock=13), inventory_item(stock=8, status="LOW_STOCK"), alert)

        response = client.post(
            "/api/retail/performance/trigger-test",
            json={"stock_code": "85123A", "quantity": 5},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["test_mode"] is True
        assert data["inventory_changes"]["change"] == -5
        assert data["inventory_changes"]["before"]["current_stock"] == 13
        assert data["low_stock_alert"]["current_stock"] == 8
        assert data["order_created"]["invoice_no"].startswith("TEST-")
        assert session.rolled_back
        assert not session.committed

    def test_commit_mode_keeps_line(self, client, session):
        session.queue(inventory_item(stock=50), inventory_item(stock=49), None)

        response = client.post(
            "/api/retail/performance/trigger-test",
            json={"stock_code": "85123A", "quantity": 1, "test_mode": False},
        )

        assert response.status_code == 200
        assert response.json()["data"]["low_stock_alert"] is None
        assert session.committed

    def test_unknown_stock_code_is_404(self, client, session):
        session.queue(None)

        response = client.post(
            "/api/retail/performance/trigger-test",
            json={"stock_code": "NOPE", "quantity": 1},
        )

        assert response.status_code == 404
        assert session.added == []

    def test_overdraw_is_rejected(self, client, session):
        session.queue(inventory_item(stock=2))
        session.flush_error = IntegrityError("INSERT INTO retail ...", {}, FakeDriverError("23514"))

        response = client.post(
            "/api/retail/performance/trigger-test",
            json={"stock_code": "85123A", "quantity": 5},
        )

        assert response.status_code == 400
        assert session.rolled_back


class TestLowStockAlerts:
    def test_alerts_are_counted(self, client, session):
        session.queue([
            {"stock_code": "A", "product_name": "a", "current_stock": 1, "reorder_level": 10, "alert_time": None},
        ])

        body = client.get("/api/retail/performance/low-stock-alerts").json()

        assert body["count"] == 1
        assert body["data"][0]["stock_code"] == "A"
