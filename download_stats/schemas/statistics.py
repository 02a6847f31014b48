from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from download_stats.core.settings import settings
from download_stats.models.event import DownloadStatus


class CountDownloadsQuery(BaseModel):
    """Parameters for an all-products or single-product download count.

    days: window size; 0 means all time and is answered from the product counters.
    download_id: product to count; 0 means every product.
    use_cache: read a live cached result when one exists. A fresh result is cached
        either way.
    """

    days: int = Field(default=0, ge=0)
    download_id: int = Field(default=0, ge=0)
    use_cache: bool = True


class PopularDownloadsQuery(BaseModel):
    """Parameters for the most downloaded products.

    days: window size; 0 means all time (published products, counter values).
    limit: maximum number of products returned.
    use_cache: as for CountDownloadsQuery.
    """

    days: int = Field(default=0, ge=0)
    limit: int = Field(default_factory=lambda: settings.popular_default_limit, ge=1)
    use_cache: bool = True


class PopularDownload(BaseModel):
    model_config = ConfigDict(frozen=True)

    download_id: int
    title: str
    downloads: int


class DownloadCountResponse(BaseModel):
    days: int
    download_id: int
    downloads: int


class LogCountResponse(BaseModel):
    download_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[DownloadStatus] = None
    count: int


class DeleteLogsResponse(BaseModel):
    deleted: int


class TableOperationResponse(BaseModel):
    performed: bool
    rows_affected: Optional[int] = None
