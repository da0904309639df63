import logging
import time
from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, update, func, text, bindparam
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import NotFoundError, translate_db_error
from app.models.inventory import inventory_view, low_stock_alerts_view
from app.models.order import InventoryMovement
from app.models.product import Product
from app.models.retail import RetailLine
from app.schemas import (
    INT4_MAX, CountedResponse, DataResponse, InventoryAdjustment, InventoryItem,
    InventoryStatusResponse, InventoryStatusSummary, LowStockAlert, RetailResponse,
    SalesAnalytics, TriggerTestRequest, TriggerTestResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/retail/performance", tags=["inventory"])

MONITORED_TABLES = ["retail", "products", "order_items", "inventory_movements"]

TEST_UNIT_PRICE = Decimal("10.00")
TEST_CUSTOMER_ID = 99999


async def inventory_row(db: AsyncSession, stock_code: str):
    result = await db.execute(select(inventory_view).where(inventory_view.c.stock_code == stock_code))
    return result.mappings().one_or_none()


def summarize(items) -> InventoryStatusSummary:
    statuses = [item["status"] for item in items]
    return InventoryStatusSummary(
        total_items=len(statuses),
        out_of_stock=statuses.count("OUT_OF_STOCK"),
        low_stock=statuses.count("LOW_STOCK"),
        in_stock=statuses.count("IN_STOCK"),
    )


@router.get("/inventory-status", response_model=InventoryStatusResponse)
async def inventory_status(db: AsyncSession = Depends(get_db)):
    """Current stock of every product with its derived status."""
    try:
        result = await db.execute(select(inventory_view).order_by(inventory_view.c.stock_code))
        items = result.mappings().all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return InventoryStatusResponse(
        data=[InventoryItem(**item) for item in items],
        summary=summarize(items),
    )


@router.post("/adjust-inventory", response_model=DataResponse[InventoryItem])
async def adjust_inventory(adjustment: InventoryAdjustment, db: AsyncSession = Depends(get_db)):
    """
    Manually adjust stock of a product.

    The stock update and its inventory movement are committed together.
    Adjusting below zero is rejected by the products stock check constraint.
    """
    try:
        result = await db.execute(
            update(Product)
            .where(Product.stock_code == adjustment.stock_code)
            .values(
                stock_quantity=Product.stock_quantity + adjustment.adjustment,
                updated_at=func.now(),
            )
            .returning(Product.product_id)
        )
        product_id = result.scalar_one_or_none()
        if product_id is None:
            await db.rollback()
            raise NotFoundError("Stock code not found in inventory")

        db.add(InventoryMovement(
            product_id=product_id,
            quantity_change=adjustment.adjustment,
            reason=adjustment.reason,
        ))
        await db.commit()

        updated = await inventory_row(db, adjustment.stock_code)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc)

    logger.info("Adjusted %s by %s (%s)", adjustment.stock_code, adjustment.adjustment, adjustment.reason)
    return DataResponse[InventoryItem](
        message="Inventory adjusted successfully",
        data=InventoryItem(**updated),
    )


@router.get("/low-stock-alerts", response_model=CountedResponse[LowStockAlert])
async def low_stock_alerts(db: AsyncSession = Depends(get_db)):
    """Alerts derived on read from products at or below their reorder level."""
    try:
        result = await db.execute(
            select(low_stock_alerts_view).order_by(low_stock_alerts_view.c.alert_time.desc())
        )
        alerts = result.mappings().all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return CountedResponse[LowStockAlert](
        data=[LowStockAlert(**alert) for alert in alerts],
        count=len(alerts),
    )


@router.post("/trigger-test", response_model=DataResponse[TriggerTestResult])
async def trigger_test(request: TriggerTestRequest, db: AsyncSession = Depends(get_db)):
    """
    Insert a synthetic retail line and report the stock before and after the
    triggers ran. In test mode the whole transaction is rolled back.
    """
    try:
        before = await inventory_row(db, request.stock_code)
        if before is None:
            raise NotFoundError("Stock code not found in inventory")

        line = RetailLine(
            invoice_no=f"TEST-{int(time.time() * 1000)}",
            stock_code=request.stock_code,
            description="Test order for trigger",
            quantity=request.quantity,
            # retail.invoice_date is a naive UTC timestamp
            invoice_date=datetime.now(timezone.utc).replace(tzinfo=None),
            unit_price=TEST_UNIT_PRICE,
            customer_id=TEST_CUSTOMER_ID,
            country="Test",
        )
        db.add(line)
        await db.flush()
        created = RetailResponse.model_validate(line)

        after = await inventory_row(db, request.stock_code)
        alert_result = await db.execute(
            select(low_stock_alerts_view).where(low_stock_alerts_view.c.stock_code == request.stock_code)
        )
        alert = alert_result.mappings().first()

        if request.test_mode:
            await db.rollback()
        else:
            await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc)

    return DataResponse[TriggerTestResult](
        data=TriggerTestResult(
            test_mode=request.test_mode,
            order_created=created,
            inventory_changes={
                "before": {"current_stock": before["current_stock"], "available_stock": before["available_stock"]},
                "after": {"current_stock": after["current_stock"], "available_stock": after["available_stock"]},
                "change": after["current_stock"] - before["current_stock"],
            },
            low_stock_alert=LowStockAlert(**alert) if alert else None,
        )
    )


@router.get("/index-usage")
async def index_usage(db: AsyncSession = Depends(get_db)):
    """Index scan statistics for the retail tables."""
    query = text("""
        SELECT
            schemaname,
            relname AS tablename,
            indexrelname AS indexname,
            idx_scan,
            idx_tup_read,
            idx_tup_fetch,
            CASE
                WHEN idx_scan = 0 THEN 'UNUSED'
                WHEN idx_tup_read > 0 THEN 'ACTIVE'
                ELSE 'LOW_USAGE'
            END AS usage_status
        FROM pg_stat_user_indexes
        WHERE relname IN :tables
        ORDER BY idx_tup_read DESC
    """).bindparams(bindparam("tables", expanding=True))

    try:
        result = await db.execute(query, {"tables": MONITORED_TABLES})
        rows = [dict(row) for row in result.mappings().all()]
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return {"success": True, "data": rows, "count": len(rows)}


@router.get("/database-stats")
async def database_stats(db: AsyncSession = Depends(get_db)):
    """Table activity, cache hit ratio and connection counts."""
    table_query = text("""
        SELECT
            schemaname,
            relname AS tablename,
            n_tup_ins AS inserts,
            n_tup_upd AS updates,
            n_tup_del AS deletes,
            n_live_tup AS live_rows,
            n_dead_tup AS dead_rows,
            last_vacuum,
            last_autovacuum,
            last_analyze,
            last_autoanalyze
        FROM pg_stat_user_tables
        WHERE relname IN :tables
    """).bindparams(bindparam("tables", expanding=True))

    cache_query = text("""
        SELECT
            SUM(heap_blks_read) AS disk_reads,
            SUM(heap_blks_hit) AS cache_hits,
            ROUND(
                SUM(heap_blks_hit) * 100.0 /
                NULLIF(SUM(heap_blks_hit + heap_blks_read), 0), 2
            ) AS cache_hit_ratio
        FROM pg_statio_user_tables
        WHERE relname IN :tables
    """).bindparams(bindparam("tables", expanding=True))

    connection_query = text("""
        SELECT state, COUNT(*) AS connection_count
        FROM pg_stat_activity
        WHERE datname = current_database()
        GROUP BY state
    """)

    try:
        tables = (await db.execute(table_query, {"tables": MONITORED_TABLES})).mappings().all()
        cache = (await db.execute(cache_query, {"tables": MONITORED_TABLES})).mappings().one()
        connections = (await db.execute(connection_query)).mappings().all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return {
        "success": True,
        "data": {
            "table_statistics": [dict(row) for row in tables],
            "cache_performance": dict(cache),
            "connection_stats": [dict(row) for row in connections],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.get("/sales-analytics", response_model=DataResponse[SalesAnalytics])
async def sales_analytics(
    days: int = Query(30, ge=1, le=INT4_MAX, description="Size of the trailing window in days"),
    db: AsyncSession = Depends(get_db),
):
    """Sales per country and stock pressure of items sold within the window."""
    since = func.current_date() - func.make_interval(0, 0, 0, days)
    total_sales = func.sum(RetailLine.quantity * RetailLine.unit_price)

    by_country = (
        select(
            RetailLine.country,
            total_sales.label("total_sales"),
            func.count().label("order_count"),
        )
        .where(RetailLine.invoice_date >= since)
        .group_by(RetailLine.country)
        .order_by(total_sales.desc())
    )

    total_ordered = func.sum(RetailLine.quantity)
    impact = (
        select(
            RetailLine.stock_code,
            func.count().label("times_ordered"),
            total_ordered.label("total_ordered"),
            inventory_view.c.current_stock,
            inventory_view.c.available_stock,
            inventory_view.c.status.label("stock_status"),
        )
        .join(inventory_view, inventory_view.c.stock_code == RetailLine.stock_code)
        .where(RetailLine.invoice_date >= since, inventory_view.c.status != "IN_STOCK")
        .group_by(
            RetailLine.stock_code,
            inventory_view.c.current_stock,
            inventory_view.c.available_stock,
            inventory_view.c.status,
        )
        .order_by(total_ordered.desc())
    )

    try:
        countries = (await db.execute(by_country)).mappings().all()
        pressure = (await db.execute(impact)).mappings().all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return DataResponse[SalesAnalytics](
        data=SalesAnalytics(
            period_days=days,
            analytics={
                "sales_by_country": [dict(row) for row in countries],
                "inventory_impact": [dict(row) for row in pressure],
            },
            generated_at=datetime.now(timezone.utc),
        )
    )
