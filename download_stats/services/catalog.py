from typing import Optional

from sqlalchemy import Integer, cast, select
from sqlalchemy.orm import Session

from download_stats.models.product import Product, ProductMeta, PRODUCT_PUBLISHED, DOWNLOAD_COUNT_META_KEY


class ProductCatalog:
    """Read-only view of the host's product records."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_title(self, product_id: int) -> str:
        title: Optional[str] = self.db.scalar(select(Product.title).where(Product.id == product_id))
        return title or ""

    def is_published(self, product_id: int) -> bool:
        status: Optional[str] = self.db.scalar(select(Product.status).where(Product.id == product_id))
        return status == PRODUCT_PUBLISHED

    def download_count(self, product_id: int) -> int:
        value = self.db.scalar(
            select(cast(ProductMeta.meta_value, Integer)).where(
                ProductMeta.product_id == product_id,
                ProductMeta.meta_key == DOWNLOAD_COUNT_META_KEY,
            )
        )
        return int(value) if value else 0
