from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import DBAPIError, IntegrityError

from app.models.retail import RetailLine
from tests.fakes import FakeDriverError, compile_sql

LINE = {
    "invoice_no": "536365",
    "stock_code": "85123A",
    "description": "WHITE HANGING HEART T-LIGHT HOLDER",
    "quantity": 5,
    "invoice_date": "2010-12-01T08:26:00",
    "unit_price": "2.55",
    "customer_id": 17850,
    "country": "United Kingdom",
}


def make_line(**overrides):
    values = dict(LINE, id=7, invoice_date=datetime(2010, 12, 1, 8, 26), unit_price=Decimal("2.55"))
    values.update(overrides)
    return RetailLine(**values)


class TestMonthlySales:
    def test_returns_function_result(self, client, session):
        session.queue(Decimal("1234.50"))

        response = client.get("/api/retail/monthly-sales", params={"year": 2011, "month": 3})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["year"] == 2011
        assert data["month"] == 3
        assert Decimal(str(data["total_sales"])) == Decimal("1234.50")
        assert "get_monthly_sales(" in compile_sql(session.statements[0])

    def test_month_without_sales_is_zero(self, client, session):
        session.queue(None)

        data = client.get("/api/retail/monthly-sales", params={"year": 1999, "month": 1}).json()["data"]

        assert Decimal(str(data["total_sales"])) == 0

    def test_missing_month_is_rejected(self, client, session):
        response = client.get("/api/retail/monthly-sales", params={"year": 2011})

        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"
        assert session.statements == []

    def test_non_integer_year_is_rejected(self, client, session):
        response = client.get("/api/retail/monthly-sales", params={"year": "twenty", "month": 1})

        assert response.status_code == 400

    def test_month_outside_calendar_is_rejected(self, client, session):
        for month in (0, 13):
            response = client.get("/api/retail/monthly-sales", params={"year": 2011, "month": month})
            assert response.status_code == 400, month

        assert session.statements == []


class TestCreateRetailLine:
    def test_insert_commits(self, client, session):
        response = client.post("/api/retail", json=LINE)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Retail record created"
        assert body["data"]["id"] == 1
        assert session.committed

    def test_quantity_beyond_integer_range_is_400(self, client, session):
        response = client.post("/api/retail", json=dict(LINE, quantity=2**31))

        assert response.status_code == 400
        assert session.added == []

    def test_negative_quantity_rejected_by_trigger_is_400(self, client, session):
        session.commit_error = DBAPIError("INSERT INTO retail ...", {}, FakeDriverError("23514", "Quantity cannot be negative"))

        response = client.post("/api/retail", json=dict(LINE, quantity=-5))

        assert response.status_code == 400
        assert "constraints" in response.json()["error"]
        assert session.rolled_back
        assert not session.committed

    def test_unknown_stock_code_is_400(self, client, session):
        session.commit_error = IntegrityError("INSERT INTO retail ...", {}, FakeDriverError("23503"))

        response = client.post("/api/retail", json=dict(LINE, stock_code="NOPE"))

        assert response.status_code == 400
        assert response.json()["error"] == "Referenced record does not exist"

    def test_missing_fields_are_rejected(self, client, session):
        response = client.post("/api/retail", json={"invoice_no": "536365"})

        assert response.status_code == 400
        assert session.added == []


class TestRetailRecord:
    def test_get_by_id(self, client, session):
        session.queue(make_line())

        response = client.get("/api/retail/7")

        assert response.status_code == 200
        assert response.json()["data"]["invoice_no"] == "536365"

    def test_non_integer_id_is_rejected(self, client, session):
        response = client.get("/api/retail/abc")

        assert response.status_code == 400
        assert session.statements == []

    def test_missing_record_is_404(self, client, session):
        session.queue(None)

        response = client.delete("/api/retail/999")

        assert response.status_code == 404
        assert response.json()["error"] == "Record not found"

    def test_id_beyond_integer_range_is_404_without_query(self, client, session):
        response = client.get("/api/retail/99999999999")

        assert response.status_code == 404
        assert response.json()["error"] == "Record not found"
        assert session.statements == []

    def test_put_replaces_columns(self, client, session):
        line = make_line()
        session.queue(line)

        response = client.put("/api/retail/7", json=dict(LINE, quantity=12, country="France"))

        assert response.status_code == 200
        assert line.quantity == 12
        assert line.country == "France"
        assert session.committed

    def test_delete_returns_deleted_line(self, client, session):
        line = make_line()
        session.queue(line)

        response = client.delete("/api/retail/7")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == 7
        assert session.deleted == [line]


class TestListRetail:
    def test_filters_by_country(self, client, session):
        session.queue(1, [make_line()])

        response = client.get("/api/retail", params={"country": "United Kingdom"})

        assert response.status_code == 200
        assert response.json()["pagination"]["total_records"] == 1
        assert "retail.country = " in compile_sql(session.statements[1])
