"""
Build paginated, filtered and sorted listing queries.

User input only ever reaches SQL as bound parameters. Sort columns are
resolved through a fixed name -> column mapping, so an unknown sort key can
never turn into SQL text: it silently falls back to the default column.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import Select, and_, func, or_, select

from app.models.product import Product
from app.models.retail import RetailLine
from app.schemas import INT4_MAX, INT4_MIN

SORT_ORDERS = ("ASC", "DESC")
DEFAULT_SORT_ORDER = "ASC"

PRODUCT_SORT_COLUMNS = {
    "product_id": Product.product_id,
    "stock_code": Product.stock_code,
    "description": Product.description,
    "unit_price": Product.unit_price,
    "stock_quantity": Product.stock_quantity,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
}
PRODUCT_DEFAULT_SORT = "stock_code"

RETAIL_SORT_COLUMNS = {
    "id": RetailLine.id,
    "invoice_no": RetailLine.invoice_no,
    "stock_code": RetailLine.stock_code,
    "quantity": RetailLine.quantity,
    "invoice_date": RetailLine.invoice_date,
    "unit_price": RetailLine.unit_price,
    "customer_id": RetailLine.customer_id,
    "country": RetailLine.country,
}
RETAIL_DEFAULT_SORT = "id"


@dataclass
class ListQuery:
    """A page query and the count query sharing its predicates."""

    statement: Select
    count_statement: Select
    sort_by: str
    sort_order: str


def resolve_sort(
    sort_by: Optional[str],
    sort_order: Optional[str],
    allowed: Dict[str, Any],
    default: str,
) -> Tuple[str, str]:
    """Validate sort key and direction against the allow-list, falling back to defaults."""
    column_name = sort_by if sort_by in allowed else default
    order = (sort_order or "").upper()
    if order not in SORT_ORDERS:
        order = DEFAULT_SORT_ORDER
    return column_name, order


LIKE_ESCAPE = "/"


def escape_like(value: str) -> str:
    """Make LIKE wildcards in user input match literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def search_condition(search: Optional[str], *columns):
    """Case-insensitive literal substring match over several columns, OR-ed together."""
    if not search:
        return None
    pattern = f"%{escape_like(search)}%"
    return or_(*[c.ilike(pattern, escape=LIKE_ESCAPE) for c in columns])


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def build_list_query(
    model,
    conditions: List[Any],
    page: int,
    limit: int,
    sort_by: Optional[str],
    sort_order: Optional[str],
    allowed: Dict[str, Any],
    default_sort: str,
) -> ListQuery:
    column_name, order = resolve_sort(sort_by, sort_order, allowed, default_sort)
    sort_column = allowed[column_name]

    statement = select(model)
    count_statement = select(func.count()).select_from(model)
    if conditions:
        statement = statement.where(and_(*conditions))
        count_statement = count_statement.where(and_(*conditions))

    ordering = sort_column.desc() if order == "DESC" else sort_column.asc()
    statement = statement.order_by(ordering).limit(limit).offset(page_offset(page, limit))

    return ListQuery(
        statement=statement,
        count_statement=count_statement,
        sort_by=column_name,
        sort_order=order,
    )


def build_product_list_query(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    category_id: Optional[int] = None,
    is_active: Optional[bool] = None,
) -> ListQuery:
    """Products listing: search on description/stock_code, category and active filters."""
    conditions = []

    matches = search_condition(search, Product.description, Product.stock_code)
    if matches is not None:
        conditions.append(matches)

    if category_id is not None:
        conditions.append(Product.category_id == category_id)

    # Tri-state: None means no filter at all
    if is_active is not None:
        conditions.append(Product.is_active == is_active)

    return build_list_query(
        Product, conditions, page, limit, sort_by, sort_order,
        PRODUCT_SORT_COLUMNS, PRODUCT_DEFAULT_SORT,
    )


def build_retail_list_query(
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    country: Optional[str] = None,
    invoice_no: Optional[str] = None,
) -> ListQuery:
    conditions = []

    matches = search_condition(search, RetailLine.description, RetailLine.stock_code)
    if matches is not None:
        conditions.append(matches)

    if country:
        conditions.append(RetailLine.country == country)

    if invoice_no:
        conditions.append(RetailLine.invoice_no == invoice_no)

    return build_list_query(
        RetailLine, conditions, page, limit, sort_by, sort_order,
        RETAIL_SORT_COLUMNS, RETAIL_DEFAULT_SORT,
    )


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    """Pagination block returned next to every listing."""
    total_pages = math.ceil(total / limit)
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_records": total,
        "limit": limit,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def classify_identifier(identifier: str) -> Tuple[str, Any]:
    """
    Decide whether a path identifier is a surrogate or a business key.

    Args:
        identifier: Raw path segment, e.g. "42" or "85123A"

    Returns:
        ("product_id", int) when the identifier parses as an integer,
        ("stock_code", str) otherwise
    """
    try:
        return "product_id", int(identifier)
    except (TypeError, ValueError):
        return "stock_code", identifier


def in_int4_range(value: int) -> bool:
    return INT4_MIN <= value <= INT4_MAX


def product_lookup_condition(identifier: str):
    field_name, value = classify_identifier(identifier)
    if field_name == "product_id":
        return Product.product_id == value
    return Product.stock_code == value
