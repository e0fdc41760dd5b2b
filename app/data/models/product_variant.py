from sqlalchemy import Column, Integer, String, Numeric

from app.data.database import Base


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, nullable=False, index=True)
    sku = Column(String, nullable=False, unique=True)

    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
