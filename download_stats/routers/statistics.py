from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from download_stats.core.settings import settings
from download_stats.db.session import get_db
from download_stats.models.event import DownloadStatus
from download_stats.models.user import User
from download_stats.schemas.statistics import (
    CountDownloadsQuery,
    PopularDownloadsQuery,
    PopularDownload,
    DownloadCountResponse,
    LogCountResponse,
    DeleteLogsResponse,
    TableOperationResponse,
)
from download_stats.security.deps import get_current_user, is_administrator, require_admin
from download_stats.services.cache import TTLCache, get_cache
from download_stats.services.catalog import ProductCatalog
from download_stats.services.clock import SiteClock, get_clock
from download_stats.services.retention import StatisticsRetention
from download_stats.services.statistics import DownloadStatistics


router = APIRouter()


def get_statistics(
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
    clock: SiteClock = Depends(get_clock),
) -> DownloadStatistics:
    return DownloadStatistics(db=db, cache=cache, catalog=ProductCatalog(db), clock=clock)


def get_retention(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StatisticsRetention:
    return StatisticsRetention(
        db=db,
        is_administrator=lambda: is_administrator(user),
        strict=settings.strict_admin_checks,
    )


@router.get("/downloads", response_model=DownloadCountResponse)
def count_downloads(
    days: int = Query(default=0, ge=0),
    download_id: int = Query(default=0, ge=0),
    cache: bool = True,
    stats: DownloadStatistics = Depends(get_statistics),
) -> DownloadCountResponse:
    total = stats.count_downloads(CountDownloadsQuery(days=days, download_id=download_id, use_cache=cache))
    return DownloadCountResponse(days=days, download_id=download_id, downloads=total)


@router.get("/popular", response_model=List[PopularDownload])
def popular_downloads(
    days: int = Query(default=0, ge=0),
    limit: int = Query(default=settings.popular_default_limit, ge=1),
    cache: bool = True,
    stats: DownloadStatistics = Depends(get_statistics),
) -> List[PopularDownload]:
    return stats.get_popular_downloads(PopularDownloadsQuery(days=days, limit=limit, use_cache=cache))


@router.get("/logs/count", response_model=LogCountResponse)
def count_logs(
    _: User = Depends(require_admin),
    download_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    status: Optional[DownloadStatus] = None,
    stats: DownloadStatistics = Depends(get_statistics),
) -> LogCountResponse:
    count = stats.count_logs(download_id=download_id, start_date=start_date, end_date=end_date, status=status)
    return LogCountResponse(
        download_id=download_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        count=count,
    )


@router.delete("/logs", response_model=DeleteLogsResponse)
def delete_logs(
    _: User = Depends(require_admin),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    status: Optional[DownloadStatus] = None,
    retention: StatisticsRetention = Depends(get_retention),
) -> DeleteLogsResponse:
    deleted = retention.delete_logs(start_date=start_date, end_date=end_date, limit=limit, status=status)
    return DeleteLogsResponse(deleted=deleted)


@router.post("/table", response_model=TableOperationResponse, status_code=status.HTTP_201_CREATED)
def setup_table(
    _: User = Depends(require_admin),
    retention: StatisticsRetention = Depends(get_retention),
) -> TableOperationResponse:
    retention.setup_table()
    return TableOperationResponse(performed=True)


@router.post("/table/empty", response_model=TableOperationResponse)
def empty_table(retention: StatisticsRetention = Depends(get_retention)) -> TableOperationResponse:
    rows = retention.empty_table()
    return TableOperationResponse(performed=rows is not None, rows_affected=rows)


@router.delete("/table", response_model=TableOperationResponse)
def delete_table(retention: StatisticsRetention = Depends(get_retention)) -> TableOperationResponse:
    dropped = retention.delete_table()
    return TableOperationResponse(performed=bool(dropped))
