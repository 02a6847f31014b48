import enum

from sqlalchemy import Column, BigInteger, Integer, String, DateTime, LargeBinary

from download_stats.db.session import Base


class DownloadStatus(str, enum.Enum):
    success = "success"
    denied = "denied"
    failed = "failed"


class DownloadEvent(Base):
    """One recorded download attempt. Rows are appended and only ever deleted."""

    __tablename__ = "download_statistics"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    status = Column(String(10), nullable=False, default=DownloadStatus.success.value, server_default="success")
    # Site-local wall time, second precision
    date = Column(DateTime, nullable=False, index=True)
    download_id = Column(Integer, nullable=False, index=True)
    # 0 for anonymous downloads
    user_id = Column(Integer, nullable=False, default=0, server_default="0")
    user_ip = Column(LargeBinary(16), nullable=False, default=b"")
    user_agent = Column(String(255), nullable=False, default="")
