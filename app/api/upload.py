import csv
import logging
import uuid

from celery import group
from fastapi import APIRouter, UploadFile, File
from kombu.exceptions import OperationalError as BrokerError
from redis.exceptions import RedisError

from app.errors import ApiError, BadRequestError
from app.schemas import UploadResponse
from app.tasks.progress import attach_group, new_progress, save_progress
from app.tasks.retail_import import import_chunk_task
from app.utils.csv_parser import REQUIRED_FIELDS, detect_column_mapping, detect_delimiter, parse_csv_file_streaming

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/retail/import", tags=["upload"])

# Maximum file size: 100MB (the full Online Retail II export is ~90MB)
MAX_FILE_SIZE = 100 * 1024 * 1024
CHUNK_ROWS = 500


def chunk_rows(rows, size: int = CHUNK_ROWS):
    chunk = []
    for row in rows:
        chunk.append(row)
        if len(chunk) >= size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


@router.post("", response_model=UploadResponse, status_code=202)
async def upload_retail_csv(
    file: UploadFile = File(..., description="Online Retail CSV export")
):
    """
    Upload an Online Retail CSV export for background import.

    Columns are detected from the header (Invoice/InvoiceNo, StockCode,
    Description, Quantity, InvoiceDate, Price/UnitPrice, Customer ID, Country).
    Returns a task ID for progress tracking.
    """
    if not file.filename:
        raise BadRequestError("No file provided")

    if not file.filename.lower().endswith('.csv'):
        raise BadRequestError("File must be a CSV file")

    content = await file.read()

    file_size = len(content)
    if file_size == 0:
        raise BadRequestError("File is empty")

    if file_size > MAX_FILE_SIZE:
        raise BadRequestError(
            f"File size ({file_size / 1024 / 1024:.2f}MB) exceeds maximum allowed size (100MB)"
        )

    try:
        text_content = content.decode('utf-8-sig')
    except UnicodeDecodeError:
        raise BadRequestError("File must be UTF-8 encoded")

    header = text_content.split('\n', 1)[0].strip()
    if not header:
        raise BadRequestError("CSV file has no header row")

    headers = next(csv.reader([header], delimiter=detect_delimiter(text_content)))
    column_mapping = detect_column_mapping(headers)
    missing = [f for f in REQUIRED_FIELDS if f not in column_mapping]
    if missing:
        raise BadRequestError("CSV file is missing required columns", missing=missing)

    chunks = list(chunk_rows(parse_csv_file_streaming(content)))
    total_rows = sum(len(c) for c in chunks)
    if total_rows == 0:
        raise BadRequestError("CSV file has no data rows")

    task_id = str(uuid.uuid4())

    try:
        # Progress must exist before the first chunk reports back
        save_progress(task_id, new_progress(task_id, total_rows, len(chunks)))

        job = group(
            import_chunk_task.s(task_id, chunk, number)
            for number, chunk in enumerate(chunks, start=1)
        ).apply_async()
        job.save()

        attach_group(task_id, str(job.id))
    except (RedisError, BrokerError) as e:
        logger.error("Could not queue import %s: %s", task_id, e)
        raise ApiError(503, "Task queue unavailable")

    logger.info("Queued import %s: %s rows in %s chunks", task_id, total_rows, len(chunks))
    return UploadResponse(
        task_id=task_id,
        message=f"File uploaded successfully. Processing {len(chunks)} chunks...",
        filename=file.filename,
    )
