"""Download counts and popularity rankings.

Two sources answer the same questions:

* the per-product counters in ``product_meta`` hold all-time success totals and are
  cheap to read, so they back every query without a day window;
* the ``download_statistics`` event table supports arbitrary date filters and backs
  every windowed query.

The choice is made once per call by :func:`resolve_window`, which returns either
:class:`AllTime` or :class:`Since`. Results are cached by query shape for the cache's
TTL and are not invalidated when new downloads are recorded.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.orm import Session

from download_stats.models.event import DownloadEvent, DownloadStatus
from download_stats.models.product import Product, ProductMeta, PRODUCT_PUBLISHED, DOWNLOAD_COUNT_META_KEY
from download_stats.schemas.statistics import CountDownloadsQuery, PopularDownloadsQuery, PopularDownload
from download_stats.services.cache import TTLCache, make_key
from download_stats.services.catalog import ProductCatalog


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllTime:
    """No day window: answered from the product counters."""


@dataclass(frozen=True)
class Since:
    """Events at or after ``start``: answered from the event table."""

    start: datetime


Window = Union[AllTime, Since]


def window_start(days: int, now: datetime) -> datetime:
    return (now - timedelta(days=days)).replace(microsecond=0)


def resolve_window(days: int, now: datetime) -> Window:
    if days < 0:
        raise ValueError("days must be zero or a positive integer")
    if days == 0:
        return AllTime()
    return Since(start=window_start(days, now))


class DownloadStatistics:
    def __init__(
        self,
        db: Session,
        cache: TTLCache,
        catalog: ProductCatalog,
        clock: Callable[[], datetime],
    ) -> None:
        self.db = db
        self.cache = cache
        self.catalog = catalog
        self.clock = clock

    def count_downloads(self, query: Optional[CountDownloadsQuery] = None) -> int:
        query = query or CountDownloadsQuery()
        key = make_key("downloads", days=query.days, download_id=query.download_id)

        if query.use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        window = resolve_window(query.days, self.clock())
        if isinstance(window, Since):
            result = self.count_logs(
                download_id=query.download_id,
                start_date=window.start,
                status=DownloadStatus.success,
            )
        else:
            result = self._sum_counters(query.download_id)

        self.cache.set(key, result)
        return result

    def count_logs(
        self,
        download_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        status: Optional[Union[DownloadStatus, str]] = None,
    ) -> int:
        stmt = select(func.count(DownloadEvent.id))
        if status:
            stmt = stmt.where(DownloadEvent.status == DownloadStatus(status).value)
        if download_id:
            stmt = stmt.where(DownloadEvent.download_id == download_id)
        if start_date:
            stmt = stmt.where(DownloadEvent.date >= start_date)
        if end_date:
            stmt = stmt.where(DownloadEvent.date <= end_date)

        result = self.db.scalar(stmt)
        return int(result) if result else 0

    def get_popular_downloads(self, query: Optional[PopularDownloadsQuery] = None) -> List[PopularDownload]:
        query = query or PopularDownloadsQuery()
        key = make_key("popular", days=query.days, limit=query.limit)

        if query.use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return list(cached)

        window = resolve_window(query.days, self.clock())
        if isinstance(window, Since):
            result = self._popular_since(window.start, query.limit)
        else:
            result = self._popular_all_time(query.limit)

        self.cache.set(key, tuple(result))
        return list(result)

    def _sum_counters(self, download_id: int) -> int:
        stmt = select(func.sum(cast(ProductMeta.meta_value, Integer))).where(
            ProductMeta.meta_key == DOWNLOAD_COUNT_META_KEY
        )
        if download_id:
            stmt = stmt.where(ProductMeta.product_id == download_id)

        total = self.db.scalar(stmt)
        return int(total) if total else 0

    def _popular_since(self, start: datetime, limit: int) -> List[PopularDownload]:
        downloads = func.count(DownloadEvent.id).label("downloads")
        rows = self.db.execute(
            select(DownloadEvent.download_id, downloads)
            .where(
                DownloadEvent.status == DownloadStatus.success.value,
                DownloadEvent.date >= start,
            )
            .group_by(DownloadEvent.download_id)
            .order_by(downloads.desc(), DownloadEvent.download_id.asc())
            .limit(limit)
        ).all()

        # One catalogue lookup per ranked product
        return [
            PopularDownload(
                download_id=row.download_id,
                title=self.catalog.get_title(row.download_id),
                downloads=int(row.downloads),
            )
            for row in rows
        ]

    def _popular_all_time(self, limit: int) -> List[PopularDownload]:
        downloads = cast(ProductMeta.meta_value, Integer)
        rows = self.db.execute(
            select(Product.id, Product.title, downloads.label("downloads"))
            .join(ProductMeta, ProductMeta.product_id == Product.id)
            .where(
                Product.status == PRODUCT_PUBLISHED,
                ProductMeta.meta_key == DOWNLOAD_COUNT_META_KEY,
            )
            .order_by(downloads.desc(), Product.id.asc())
            .limit(limit)
        ).all()

        return [
            PopularDownload(download_id=row.id, title=row.title or "", downloads=int(row.downloads or 0))
            for row in rows
        ]
