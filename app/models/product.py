from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Numeric, CheckConstraint
from sqlalchemy.sql import func
from app.database import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("unit_price > 0", name="ck_products_unit_price_positive"),
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    product_id = Column(Integer, primary_key=True, index=True)
    stock_code = Column(String(20), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False)
    category_id = Column(Integer, nullable=True, index=True)
    unit_price = Column(Numeric(10, 2), nullable=True)
    stock_quantity = Column(Integer, nullable=False, server_default="0")
    reorder_level = Column(Integer, nullable=False, server_default="10")
    supplier_info = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, server_default="true", index=True)
    weight = Column(Numeric(10, 3), nullable=True)
    dimensions = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # stock_quantity is decremented by the decrement_product_stock trigger
    # whenever a retail or order_items line is inserted (see alembic 0002).

    def __repr__(self):
        return f"<Product(product_id={self.product_id}, stock_code='{self.stock_code}')>"
