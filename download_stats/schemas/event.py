from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from download_stats.models.event import DownloadStatus
from download_stats.services.recorder import unpack_ip


class DownloadEventCreate(BaseModel):
    download_id: int = Field(gt=0)
    status: DownloadStatus = DownloadStatus.success
    user_ip: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = None


class DownloadEventOut(BaseModel):
    id: int
    status: str
    date: datetime
    download_id: int
    user_id: int
    user_ip: Optional[str]
    user_agent: str

    @field_validator("user_ip", mode="before")
    @classmethod
    def _ip_to_text(cls, value):
        if isinstance(value, (bytes, bytearray)):
            return unpack_ip(bytes(value))
        return value

    class Config:
        from_attributes = True
