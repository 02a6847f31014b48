from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship

from download_stats.db.session import Base


PRODUCT_PUBLISHED = "published"
PRODUCT_DRAFT = "draft"

# Meta key holding the all-time successful download tally
DOWNLOAD_COUNT_META_KEY = "_download_count"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False, default="")
    status = Column(String(20), nullable=False, default=PRODUCT_PUBLISHED, server_default=PRODUCT_PUBLISHED, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    meta = relationship("ProductMeta", back_populates="product", cascade="all, delete-orphan")


class ProductMeta(Base):
    __tablename__ = "product_meta"
    __table_args__ = (UniqueConstraint("product_id", "meta_key", name="uq_product_meta_key"),)

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    meta_key = Column(String(255), nullable=False, index=True)
    # Stored as text; numeric aggregates cast explicitly
    meta_value = Column(Text, nullable=True)

    product = relationship("Product", back_populates="meta")
