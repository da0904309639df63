from datetime import datetime, timedelta

import psycopg2
import pytest

from app.tasks import progress as progress_module
from app.tasks.retail_import import INSERT_LINE_SQL, insert_lines


class FakeCursor:
    """Records executed SQL and fails inserts for the stock codes it is told to reject."""

    def __init__(self, reject=()):
        self.reject = set(reject)
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append(sql.strip() if params is None else ("INSERT", params["stock_code"]))
        if params is not None and params["stock_code"] in self.reject:
            raise psycopg2.Error("new row violates check constraint")


def row(number, stock_code="85123A", quantity="6"):
    return {
        "row_number": number,
        "invoice_no": "536365",
        "stock_code": stock_code,
        "description": "",
        "quantity": quantity,
        "invoice_date": "2010-12-01 08:26:00",
        "unit_price": "2.55",
        "customer_id": "",
        "country": "United Kingdom",
    }


def test_insert_statement_targets_retail():
    assert "INSERT INTO retail" in INSERT_LINE_SQL


def test_each_row_is_wrapped_in_a_savepoint():
    cur = FakeCursor()

    successful, failed, errors = insert_lines(cur, [row(2), row(3, "22752")])

    assert (successful, failed, errors) == (2, 0, [])
    assert cur.executed == [
        "SAVEPOINT retail_line",
        ("INSERT", "85123A"),
        "RELEASE SAVEPOINT retail_line",
        "SAVEPOINT retail_line",
        ("INSERT", "22752"),
        "RELEASE SAVEPOINT retail_line",
    ]


def test_rejected_row_rolls_back_only_its_savepoint():
    cur = FakeCursor(reject={"BAD"})

    successful, failed, errors = insert_lines(cur, [row(2), row(3, "BAD"), row(4)])

    assert successful == 2
    assert failed == 1
    assert errors[0].startswith("Row 3:")
    assert "ROLLBACK TO SAVEPOINT retail_line" in cur.executed
    assert cur.executed[-1] == "RELEASE SAVEPOINT retail_line"


def test_invalid_rows_never_reach_the_database():
    cur = FakeCursor()

    successful, failed, errors = insert_lines(cur, [row(2, quantity="many")])

    assert (successful, failed) == (0, 1)
    assert cur.executed == []
    assert "not an integer" in errors[0]


def test_unconvertible_customer_id_fails_only_its_row():
    cur = FakeCursor()
    bad = dict(row(3), customer_id="inf")

    successful, failed, errors = insert_lines(cur, [row(2), bad])

    assert (successful, failed) == (1, 1)
    assert errors[0].startswith("Row 3: customer_id")


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(progress_module, "redis_client", fake)
    return fake


def test_progress_completes_after_last_chunk(fake_redis):
    progress_module.save_progress("t1", progress_module.new_progress("t1", total_rows=4, total_chunks=2))

    first = progress_module._record_chunk("t1", 2, 2, 0, [])
    assert first["status"] == "processing"
    assert first["progress"] == 50.0

    last = progress_module._record_chunk("t1", 2, 1, 1, ["Row 5: bad"])
    assert last["status"] == "completed"
    assert last["successful_rows"] == 3
    assert last["failed_rows"] == 1
    assert last["errors"] == ["Row 5: bad"]
    assert progress_module.get_progress("t1")["completed_at"].endswith("+00:00")


def test_progress_timestamps_are_utc_aware(fake_redis):
    progress = progress_module.new_progress("t3", total_rows=1, total_chunks=1)

    assert datetime.fromisoformat(progress["created_at"]).utcoffset() == timedelta(0)


def test_cancelled_import_stays_cancelled(fake_redis):
    progress = progress_module.new_progress("t2", total_rows=4, total_chunks=2)
    progress["status"] = "cancelled"
    progress_module.save_progress("t2", progress)

    assert progress_module.is_cancelled("t2")
    assert progress_module._record_chunk("t2", 2, 2, 0, [])["status"] == "cancelled"
