import logging

from fastapi import FastAPI

from download_stats.core.logging import setup_logging
from download_stats.db.session import Base, engine, SessionLocal
from download_stats.models.event import DownloadEvent
from download_stats.services.retention import StatisticsRetention


logger = logging.getLogger(__name__)


def create_tables() -> None:
    # Host tables first; the event table goes through the statistics lifecycle
    host_tables = [t for t in Base.metadata.sorted_tables if t is not DownloadEvent.__table__]
    Base.metadata.create_all(bind=engine, tables=host_tables)

    db = SessionLocal()
    try:
        # Table setup runs during install/upgrade and is not role-gated
        StatisticsRetention(db, is_administrator=lambda: False).setup_table()
    finally:
        db.close()


def register_startup(app: FastAPI) -> None:
    @app.on_event("startup")
    def _startup() -> None:
        setup_logging()
        create_tables()
        logger.info("%s ready", app.title)
