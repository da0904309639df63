from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey
from app.database import Base


class RetailLine(Base):
    """One invoice line of the Online Retail II dataset."""

    __tablename__ = "retail"

    id = Column(Integer, primary_key=True, index=True)
    invoice_no = Column(String(20), nullable=False, index=True)
    stock_code = Column(String(20), ForeignKey("products.stock_code"), nullable=False, index=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False)
    invoice_date = Column(DateTime, nullable=False, index=True)
    unit_price = Column(Numeric(10, 2), nullable=False)
    customer_id = Column(Integer, nullable=True)
    country = Column(String(60), nullable=True)

    def __repr__(self):
        return f"<RetailLine(id={self.id}, invoice_no='{self.invoice_no}', stock_code='{self.stock_code}')>"
