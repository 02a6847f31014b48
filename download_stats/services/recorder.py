import ipaddress
import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import Integer, String, cast, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from download_stats.models.event import DownloadEvent, DownloadStatus
from download_stats.models.product import ProductMeta, DOWNLOAD_COUNT_META_KEY
from download_stats.services.clock import get_clock


logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 255


def pack_ip(address: Optional[str]) -> bytes:
    """Binary form of an IPv4 (4 bytes) or IPv6 (16 bytes) address; b"" when unusable."""
    if not address:
        return b""
    try:
        return ipaddress.ip_address(address.strip()).packed
    except ValueError:
        logger.debug("Ignoring unparsable client address %r", address)
        return b""


def unpack_ip(packed: Optional[bytes]) -> Optional[str]:
    if not packed:
        return None
    try:
        return str(ipaddress.ip_address(packed))
    except ValueError:
        return None


def _counter_upsert(dialect_name: str, download_id: int):
    incremented = cast(cast(ProductMeta.meta_value, Integer) + 1, String)
    values = {"product_id": download_id, "meta_key": DOWNLOAD_COUNT_META_KEY, "meta_value": "1"}

    if dialect_name in ("sqlite", "postgresql"):
        insert = sqlite_insert if dialect_name == "sqlite" else pg_insert
        return (
            insert(ProductMeta)
            .values(**values)
            .on_conflict_do_update(
                index_elements=[ProductMeta.product_id, ProductMeta.meta_key],
                set_={"meta_value": incremented},
            )
        )
    if dialect_name in ("mysql", "mariadb"):
        return mysql_insert(ProductMeta).values(**values).on_duplicate_key_update(meta_value=incremented)
    return None


def increment_download_count(db: Session, download_id: int) -> None:
    """Add one to the product's counter in the store; creates it at 1 when absent.

    On SQLite, PostgreSQL and MySQL this is a single upsert, so two first downloads
    of the same product cannot both insert a counter row.
    """
    upsert = _counter_upsert(db.get_bind().dialect.name, download_id)
    if upsert is not None:
        db.execute(upsert)
        return

    result = db.execute(
        update(ProductMeta)
        .where(
            ProductMeta.product_id == download_id,
            ProductMeta.meta_key == DOWNLOAD_COUNT_META_KEY,
        )
        .values(meta_value=cast(cast(ProductMeta.meta_value, Integer) + 1, String))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.add(ProductMeta(product_id=download_id, meta_key=DOWNLOAD_COUNT_META_KEY, meta_value="1"))


def record_download(
    db: Session,
    download_id: int,
    status: Union[DownloadStatus, str] = DownloadStatus.success,
    user_id: int = 0,
    user_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DownloadEvent:
    status_value = DownloadStatus(status).value
    stamp = now if now is not None else get_clock()()

    evt = DownloadEvent(
        status=status_value,
        date=stamp.replace(microsecond=0),
        download_id=download_id,
        user_id=user_id or 0,
        user_ip=pack_ip(user_ip),
        user_agent=(user_agent or "")[:USER_AGENT_MAX_LENGTH],
    )
    db.add(evt)
    if status_value == DownloadStatus.success.value:
        increment_download_count(db, download_id)
    db.commit()
    db.refresh(evt)

    logger.info("Recorded %s download of %s by user %s", status_value, download_id, evt.user_id)
    return evt
