import logging
from typing import Dict, List

import psycopg2

from app.database import DATABASE_URL_SYNC
from app.tasks.celery_app import celery_app
from app.tasks.progress import is_cancelled, record_chunk
from app.utils.csv_parser import validate_retail_row

logger = logging.getLogger(__name__)

INSERT_LINE_SQL = """
    INSERT INTO retail (
        invoice_no, stock_code, description, quantity,
        invoice_date, unit_price, customer_id, country
    )
    VALUES (
        %(invoice_no)s, %(stock_code)s, %(description)s, %(quantity)s,
        %(invoice_date)s, %(unit_price)s, %(customer_id)s, %(country)s
    )
"""


def insert_lines(cur, rows: List[Dict]) -> tuple[int, int, List[str]]:
    """
    Insert retail lines one by one, each inside its own savepoint.

    A row rejected by the database (negative quantity or price, unknown
    stock code, stock floor) only rolls back its savepoint, so the rest of
    the chunk still commits.
    """
    successful = 0
    failed = 0
    errors = []

    for row_data in rows:
        row_number = row_data.get('row_number', 'unknown')

        is_valid, error_msg, line = validate_retail_row(row_data)
        if not is_valid:
            failed += 1
            errors.append(f"Row {row_number}: {error_msg}")
            continue

        cur.execute("SAVEPOINT retail_line")
        try:
            cur.execute(INSERT_LINE_SQL, line)
        except psycopg2.Error as e:
            cur.execute("ROLLBACK TO SAVEPOINT retail_line")
            failed += 1
            errors.append(f"Row {row_number}: {e.pgerror.strip() if e.pgerror else e}")
            continue
        cur.execute("RELEASE SAVEPOINT retail_line")
        successful += 1

    return successful, failed, errors


@celery_app.task(bind=True, max_retries=3, ignore_result=True)
def import_chunk_task(self, task_id: str, chunk_data: List[Dict], chunk_number: int):
    """
    Import one chunk of parsed CSV rows into the retail table.

    Args:
        task_id: Import identifier for progress tracking
        chunk_data: Raw rows produced by parse_csv_file_streaming
        chunk_number: Chunk number for logging
    """
    if is_cancelled(task_id):
        return {"success": False, "message": "Task cancelled", "chunk": chunk_number}

    try:
        conn = psycopg2.connect(DATABASE_URL_SYNC)
        try:
            with conn.cursor() as cur:
                successful, failed, errors = insert_lines(cur, chunk_data)
            conn.commit()
        finally:
            conn.close()
    except psycopg2.OperationalError as exc:
        # Connection problems are transient, retry the whole chunk
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=10)
        record_chunk(task_id, len(chunk_data), 0, len(chunk_data), [f"Chunk {chunk_number} failed: {exc}"])
        raise

    logger.info("Chunk %s of import %s: %s ok, %s failed", chunk_number, task_id, successful, failed)
    record_chunk(task_id, len(chunk_data), successful, failed, errors[-5:])

    return {
        "success": True,
        "chunk": chunk_number,
        "successful": successful,
        "failed": failed,
    }
