import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.database import get_db
from app.errors import NotFoundError, translate_db_error
from app.models.retail import RetailLine
from app.schemas import INT4_MAX, DataResponse, MonthlySales, PageResponse, RetailCreate, RetailResponse
from app.utils.query_builder import build_retail_list_query, in_int4_range, pagination_meta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/retail", tags=["retail"])


async def find_line(db: AsyncSession, record_id: int) -> RetailLine:
    if not in_int4_range(record_id):
        raise NotFoundError("Record not found")

    result = await db.execute(select(RetailLine).where(RetailLine.id == record_id))
    line = result.scalar_one_or_none()
    if line is None:
        raise NotFoundError("Record not found")
    return line


@router.get("", response_model=PageResponse[RetailResponse])
async def list_retail(
    page: int = Query(1, ge=1, le=INT4_MAX),
    limit: int = Query(100, ge=1, le=INT4_MAX),
    search: Optional[str] = Query(None, description="Substring match on description or stock_code"),
    sort_by: Optional[str] = Query("id"),
    sort_order: Optional[str] = Query("ASC"),
    country: Optional[str] = Query(None),
    invoice_no: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List retail transaction lines."""
    query = build_retail_list_query(
        page=page,
        limit=limit,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        country=country,
        invoice_no=invoice_no,
    )

    try:
        total = (await db.execute(query.count_statement)).scalar_one()
        lines = (await db.execute(query.statement)).scalars().all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return PageResponse[RetailResponse](
        data=[RetailResponse.model_validate(line) for line in lines],
        pagination=pagination_meta(total, page, limit),
    )


@router.get("/monthly-sales", response_model=DataResponse[MonthlySales])
async def monthly_sales(
    year: int = Query(..., ge=1, le=9999, description="Four-digit year"),
    month: int = Query(..., ge=1, le=12, description="Month number, 1-12"),
    db: AsyncSession = Depends(get_db),
):
    """Total sales (quantity * unit_price) for one month, via get_monthly_sales()."""
    try:
        result = await db.execute(select(func.get_monthly_sales(year, month).label("total_sales")))
        total_sales = result.scalar_one()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return DataResponse[MonthlySales](
        data=MonthlySales(year=year, month=month, total_sales=total_sales or 0)
    )


@router.get("/{record_id}", response_model=DataResponse[RetailResponse])
async def get_retail(record_id: int, db: AsyncSession = Depends(get_db)):
    try:
        line = await find_line(db, record_id)
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return DataResponse[RetailResponse](data=RetailResponse.model_validate(line))


@router.post("", response_model=DataResponse[RetailResponse], status_code=201)
async def create_retail(line: RetailCreate, db: AsyncSession = Depends(get_db)):
    """
    Insert a transaction line.

    The database rejects negative quantity or price and decrements the
    product's stock in the same transaction.
    """
    db_line = RetailLine(**line.model_dump())

    try:
        db.add(db_line)
        await db.commit()
        await db.refresh(db_line)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc)

    logger.info("Recorded %s x %s on invoice %s", db_line.quantity, db_line.stock_code, db_line.invoice_no)
    return DataResponse[RetailResponse](
        message="Retail record created",
        data=RetailResponse.model_validate(db_line),
    )


@router.put("/{record_id}", response_model=DataResponse[RetailResponse])
async def replace_retail(record_id: int, line: RetailCreate, db: AsyncSession = Depends(get_db)):
    """Replace every column of a transaction line."""
    try:
        db_line = await find_line(db, record_id)

        for field, value in line.model_dump().items():
            setattr(db_line, field, value)

        await db.commit()
        await db.refresh(db_line)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc)

    return DataResponse[RetailResponse](
        message="Retail record updated",
        data=RetailResponse.model_validate(db_line),
    )


@router.delete("/{record_id}", response_model=DataResponse[RetailResponse])
async def delete_retail(record_id: int, db: AsyncSession = Depends(get_db)):
    try:
        db_line = await find_line(db, record_id)
        deleted = RetailResponse.model_validate(db_line)
        await db.delete(db_line)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc)

    return DataResponse[RetailResponse](message="Retail record deleted", data=deleted)
