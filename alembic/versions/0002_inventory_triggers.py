"""Inventory triggers, monthly sales function and derived stock views

Revision ID: 0002
Revises: 0001
Create Date: 2025-06-02 11:02:37.480915

"""
from alembic import op
from sqlalchemy import text


# revision identifiers, used by Alembic.
revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None

# Transaction-line tables guarded by the positive-value check and whose
# inserts decrement product stock.
LINE_TABLES = ("retail", "order_items")


def upgrade() -> None:
    # Zero is allowed; negative values abort the statement with check_violation
    op.execute(text("""
        CREATE OR REPLACE FUNCTION enforce_positive_values()
        RETURNS TRIGGER AS $$
        BEGIN
            IF NEW.quantity < 0 THEN
                RAISE EXCEPTION 'Quantity cannot be negative'
                    USING ERRCODE = 'check_violation';
            END IF;

            IF NEW.unit_price < 0 THEN
                RAISE EXCEPTION 'Unit price cannot be negative'
                    USING ERRCODE = 'check_violation';
            END IF;

            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """))

    # The UPDATE row lock serialises concurrent lines for the same product.
    # Going below zero trips ck_products_stock_non_negative and aborts the insert.
    op.execute(text("""
        CREATE OR REPLACE FUNCTION decrement_product_stock()
        RETURNS TRIGGER AS $$
        BEGIN
            IF TG_TABLE_NAME = 'order_items' THEN
                UPDATE products
                SET stock_quantity = stock_quantity - NEW.quantity,
                    updated_at = now()
                WHERE product_id = NEW.product_id;
            ELSE
                UPDATE products
                SET stock_quantity = stock_quantity - NEW.quantity,
                    updated_at = now()
                WHERE stock_code = NEW.stock_code;
            END IF;

            IF NOT FOUND THEN
                RAISE EXCEPTION 'No product for inserted % line', TG_TABLE_NAME
                    USING ERRCODE = 'foreign_key_violation';
            END IF;

            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """))

    for table in LINE_TABLES:
        op.execute(text(f"""
            CREATE TRIGGER trg_{table}_enforce_positive_values
            BEFORE INSERT OR UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION enforce_positive_values()
        """))
        op.execute(text(f"""
            CREATE TRIGGER trg_{table}_decrement_stock
            AFTER INSERT ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION decrement_product_stock()
        """))

    op.execute(text("""
        CREATE OR REPLACE FUNCTION get_monthly_sales(year_input INT, month_input INT)
        RETURNS NUMERIC AS $$
        BEGIN
            RETURN (
                SELECT COALESCE(SUM(quantity * unit_price), 0)
                FROM retail
                WHERE EXTRACT(YEAR FROM invoice_date) = year_input
                  AND EXTRACT(MONTH FROM invoice_date) = month_input
            );
        END;
        $$ LANGUAGE plpgsql STABLE
    """))

    # Derived on every read; nothing to keep in sync
    op.execute(text("""
        CREATE VIEW inventory AS
        SELECT
            stock_code,
            description AS product_name,
            stock_quantity AS current_stock,
            stock_quantity AS available_stock,
            reorder_level,
            CASE
                WHEN stock_quantity <= 0 THEN 'OUT_OF_STOCK'
                WHEN stock_quantity <= reorder_level THEN 'LOW_STOCK'
                ELSE 'IN_STOCK'
            END AS status
        FROM products
    """))

    op.execute(text("""
        CREATE VIEW low_stock_alerts AS
        SELECT
            stock_code,
            description AS product_name,
            stock_quantity AS current_stock,
            reorder_level,
            updated_at AS alert_time
        FROM products
        WHERE is_active AND stock_quantity <= reorder_level
    """))


def downgrade() -> None:
    op.execute(text("DROP VIEW IF EXISTS low_stock_alerts"))
    op.execute(text("DROP VIEW IF EXISTS inventory"))
    op.execute(text("DROP FUNCTION IF EXISTS get_monthly_sales(INT, INT)"))

    for table in LINE_TABLES:
        op.execute(text(f"DROP TRIGGER IF EXISTS trg_{table}_decrement_stock ON {table}"))
        op.execute(text(f"DROP TRIGGER IF EXISTS trg_{table}_enforce_positive_values ON {table}"))

    op.execute(text("DROP FUNCTION IF EXISTS decrement_product_stock()"))
    op.execute(text("DROP FUNCTION IF EXISTS enforce_positive_values()"))
