# Views created by alembic revision 0002. They are derived from products on
# every read, so they are declared as lightweight table() constructs rather
# than mapped classes (Base.metadata must not try to create them).
from sqlalchemy import table, column, Integer, String, Text, DateTime


inventory_view = table(
    "inventory",
    column("stock_code", String),
    column("product_name", Text),
    column("current_stock", Integer),
    column("available_stock", Integer),
    column("reorder_level", Integer),
    column("status", String),
)

low_stock_alerts_view = table(
    "low_stock_alerts",
    column("stock_code", String),
    column("product_name", Text),
    column("current_stock", Integer),
    column("reorder_level", Integer),
    column("alert_time", DateTime),
)
