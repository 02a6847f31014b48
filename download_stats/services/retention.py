import logging
from datetime import datetime
from typing import Callable, List, Optional, Union

from fastapi import HTTPException, status as http_status
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from download_stats.models.event import DownloadEvent, DownloadStatus


logger = logging.getLogger(__name__)


def _deletion_filters(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    status: Optional[Union[DownloadStatus, str]],
) -> List:
    # Bounds are exclusive on both ends
    filters = []
    if start_date:
        filters.append(DownloadEvent.date > start_date)
    if end_date:
        filters.append(DownloadEvent.date < end_date)
    if status:
        filters.append(DownloadEvent.status == DownloadStatus(status).value)
    return filters


class StatisticsRetention:
    """Pruning and lifecycle of the download event table.

    ``empty_table`` and ``delete_table`` need an administrator. By default a denied
    call does nothing and returns None; with ``strict`` it raises 403 instead.
    Cached aggregates are left alone and expire on their own.
    """

    def __init__(self, db: Session, is_administrator: Callable[[], bool], strict: bool = False) -> None:
        self.db = db
        self.is_administrator = is_administrator
        self.strict = strict

    def delete_logs(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
        status: Optional[Union[DownloadStatus, str]] = None,
    ) -> int:
        """Delete matching events, oldest first, at most ``limit`` of them."""
        filters = _deletion_filters(start_date, end_date, status)

        if limit:
            ids = self.db.scalars(
                select(DownloadEvent.id)
                .where(*filters)
                .order_by(DownloadEvent.date.asc(), DownloadEvent.id.asc())
                .limit(limit)
            ).all()
            if not ids:
                return 0
            stmt = delete(DownloadEvent).where(DownloadEvent.id.in_(ids))
        else:
            stmt = delete(DownloadEvent).where(*filters)

        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        self.db.commit()

        deleted = result.rowcount or 0
        logger.info(
            "Deleted %s download events (start=%s end=%s status=%s limit=%s)",
            deleted, start_date, end_date, status, limit,
        )
        return deleted

    def count_deletable(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        status: Optional[Union[DownloadStatus, str]] = None,
    ) -> int:
        """Number of events ``delete_logs`` would remove without a limit."""
        filters = _deletion_filters(start_date, end_date, status)
        result = self.db.scalar(select(func.count(DownloadEvent.id)).where(*filters))
        return int(result) if result else 0

    def empty_table(self) -> Optional[int]:
        if not self._allowed("empty_table"):
            return None

        result = self.db.execute(delete(DownloadEvent).execution_options(synchronize_session=False))
        self.db.commit()
        logger.info("Emptied download statistics table (%s rows)", result.rowcount)
        return result.rowcount or 0

    def delete_table(self) -> Optional[bool]:
        if not self._allowed("delete_table"):
            return None

        DownloadEvent.__table__.drop(bind=self.db.connection(), checkfirst=True)
        self.db.commit()
        logger.info("Dropped download statistics table")
        return True

    def setup_table(self) -> None:
        DownloadEvent.__table__.create(bind=self.db.connection(), checkfirst=True)
        self.db.commit()
        logger.info("Download statistics table is in place")

    def _allowed(self, operation: str) -> bool:
        if self.is_administrator():
            return True
        logger.warning("Refused %s: caller is not an administrator", operation)
        if self.strict:
            raise HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail="Admin required")
        return False
