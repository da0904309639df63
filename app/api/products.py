import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, func, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.database import get_db
from app.errors import (
    FOREIGN_KEY_VIOLATION, ConflictError, NotFoundError, sqlstate_of, translate_db_error,
)
from app.models.product import Product
from app.models.order import Order, OrderItem, InventoryMovement
from app.models.retail import RetailLine
from app.schemas import (
    INT4_MAX, INT4_MIN, CountedResponse, DataResponse, LowStockProduct, PageResponse,
    ProductAnalytics, ProductCreate, ProductDetail, ProductReplace, ProductResponse,
    ProductSummary, ProductUpdate,
)
from app.utils.query_builder import (
    build_product_list_query, classify_identifier, in_int4_range, pagination_meta,
    product_lookup_condition,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

DUPLICATE_STOCK_CODE = "Product with this stock_code already exists"
RELATED_RECORDS_EXIST = "Cannot delete product with existing related records"


async def find_product(db: AsyncSession, identifier: str) -> Product:
    """Load a product by product_id or stock_code, raising 404 when absent."""
    field_name, value = classify_identifier(identifier)
    if field_name == "product_id" and not in_int4_range(value):
        raise NotFoundError("Product not found")

    result = await db.execute(select(Product).where(product_lookup_condition(identifier)))
    product = result.scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product not found")
    return product


@router.get("", response_model=PageResponse[ProductResponse])
async def list_products(
    page: int = Query(1, ge=1, le=INT4_MAX, description="Page number"),
    limit: int = Query(10, ge=1, le=INT4_MAX, description="Items per page"),
    search: Optional[str] = Query(None, description="Substring match on description or stock_code"),
    sort_by: Optional[str] = Query("stock_code", description="Sort column (unknown values fall back to stock_code)"),
    sort_order: Optional[str] = Query("ASC", description="ASC or DESC"),
    category_id: Optional[int] = Query(None, ge=INT4_MIN, le=INT4_MAX, description="Filter by category"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
    db: AsyncSession = Depends(get_db),
):
    """List products with pagination, search, filters and sorting."""
    query = build_product_list_query(
        page=page,
        limit=limit,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        category_id=category_id,
        is_active=is_active,
    )

    try:
        total = (await db.execute(query.count_statement)).scalar_one()
        products = (await db.execute(query.statement)).scalars().all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return PageResponse[ProductResponse](
        data=[ProductResponse.model_validate(p) for p in products],
        pagination=pagination_meta(total, page, limit),
    )


@router.get("/analytics/summary", response_model=DataResponse[ProductSummary])
async def products_summary(db: AsyncSession = Depends(get_db)):
    """Aggregate figures over all priced products."""
    low_stock = case((Product.stock_quantity <= Product.reorder_level, 1))
    query = select(
        func.count().label("total_products"),
        func.count(case((Product.is_active.is_(True), 1))).label("active_products"),
        func.count(case((Product.is_active.is_(False), 1))).label("inactive_products"),
        func.avg(Product.unit_price).label("avg_product_price"),
        func.sum(Product.stock_quantity).label("total_stock_quantity"),
        func.count(low_stock).label("low_stock_products"),
        func.min(Product.unit_price).label("min_price"),
        func.max(Product.unit_price).label("max_price"),
        func.avg(Product.stock_quantity).label("avg_stock_quantity"),
    ).where(Product.unit_price.is_not(None))

    try:
        row = (await db.execute(query)).mappings().one()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return DataResponse[ProductSummary](data=ProductSummary(**row))


@router.get("/low-stock", response_model=CountedResponse[LowStockProduct])
async def low_stock_products(db: AsyncSession = Depends(get_db)):
    """Active products at or below their reorder level, lowest stock first."""
    query = (
        select(Product)
        .where(Product.stock_quantity <= Product.reorder_level, Product.is_active.is_(True))
        .order_by(Product.stock_quantity.asc())
    )

    try:
        products = (await db.execute(query)).scalars().all()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    return CountedResponse[LowStockProduct](
        data=[LowStockProduct.model_validate(p) for p in products],
        count=len(products),
    )


@router.get("/{identifier}", response_model=DataResponse[ProductDetail])
async def get_product(identifier: str, db: AsyncSession = Depends(get_db)):
    """Get a single product by product_id or stock_code, with its order analytics."""
    try:
        product = await find_product(db, identifier)

        analytics_query = (
            select(
                func.count(OrderItem.id).label("order_count"),
                func.sum(OrderItem.quantity).label("total_sold"),
                func.avg(OrderItem.unit_price).label("avg_selling_price"),
                func.min(Order.created_at).label("first_sold"),
                func.max(Order.created_at).label("last_sold"),
            )
            .select_from(OrderItem)
            .join(Order, OrderItem.order_id == Order.id)
            .where(OrderItem.product_id == product.product_id)
        )
        analytics = (await db.execute(analytics_query)).mappings().one()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc)

    detail = ProductDetail.model_validate(product)
    detail.analytics = ProductAnalytics(**analytics)
    return DataResponse[ProductDetail](data=detail)


@router.post("", response_model=DataResponse[ProductResponse], status_code=201)
async def create_product(product: ProductCreate, db: AsyncSession = Depends(get_db)):
    """Create a new product."""
    db_product = Product(**product.model_dump())

    try:
        db.add(db_product)
        await db.commit()
        await db.refresh(db_product)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc, DUPLICATE_STOCK_CODE)

    logger.info("Created product %s", db_product.stock_code)
    return DataResponse[ProductResponse](
        message="Product created successfully",
        data=ProductResponse.model_validate(db_product),
    )


@router.put("/{identifier}", response_model=DataResponse[ProductResponse])
async def replace_product(
    identifier: str,
    product_replace: ProductReplace,
    db: AsyncSession = Depends(get_db),
):
    """Replace every mutable column of a product. Omitted fields are written as NULL."""
    try:
        db_product = await find_product(db, identifier)

        for field, value in product_replace.model_dump().items():
            setattr(db_product, field, value)

        await db.commit()
        await db.refresh(db_product)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc, DUPLICATE_STOCK_CODE)

    return DataResponse[ProductResponse](
        message="Product updated successfully",
        data=ProductResponse.model_validate(db_product),
    )


@router.patch("/{identifier}", response_model=DataResponse[ProductResponse])
async def update_product(
    identifier: str,
    product_update: ProductUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update only the supplied fields of a product."""
    try:
        db_product = await find_product(db, identifier)

        update_data = product_update.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(db_product, field, value)

        await db.commit()
        await db.refresh(db_product)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise translate_db_error(exc, DUPLICATE_STOCK_CODE)

    return DataResponse[ProductResponse](
        message="Product updated successfully",
        data=ProductResponse.model_validate(db_product),
    )


@router.delete("/{identifier}", response_model=DataResponse[ProductResponse])
async def delete_product(identifier: str, db: AsyncSession = Depends(get_db)):
    """Delete a product that no order item, inventory movement or retail line references."""
    try:
        product = await find_product(db, identifier)

        related_query = select(
            select(func.count(OrderItem.id))
            .where(OrderItem.product_id == product.product_id)
            .scalar_subquery().label("order_items"),
            select(func.count(InventoryMovement.id))
            .where(InventoryMovement.product_id == product.product_id)
            .scalar_subquery().label("inventory_movements"),
            select(func.count(RetailLine.id))
            .where(RetailLine.stock_code == product.stock_code)
            .scalar_subquery().label("retail_lines"),
        )
        related = dict((await db.execute(related_query)).mappings().one())

        if sum(related.values()) > 0:
            raise ConflictError(
                RELATED_RECORDS_EXIST,
                related_records=related,
            )

        deleted = ProductResponse.model_validate(product)
        await db.delete(product)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        # A dependent row inserted after the check above
        if sqlstate_of(exc) == FOREIGN_KEY_VIOLATION:
            logger.warning("Delete of %s blocked by a new dependent: %s", identifier, exc)
            raise ConflictError(RELATED_RECORDS_EXIST)
        raise translate_db_error(exc)

    logger.info("Deleted product %s", deleted.stock_code)
    return DataResponse[ProductResponse](
        message="Product deleted successfully",
        data=deleted,
    )
