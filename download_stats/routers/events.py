from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from download_stats.db.session import get_db
from download_stats.models.event import DownloadEvent, DownloadStatus
from download_stats.models.product import Product
from download_stats.models.user import User
from download_stats.schemas.event import DownloadEventCreate, DownloadEventOut
from download_stats.security.deps import get_optional_user, require_admin
from download_stats.services.clock import SiteClock, get_clock
from download_stats.services.recorder import record_download


router = APIRouter()


@router.post("/events", response_model=DownloadEventOut, status_code=status.HTTP_201_CREATED)
def log_download_event(
    payload: DownloadEventCreate,
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    clock: SiteClock = Depends(get_clock),
) -> DownloadEventOut:
    if not db.query(Product.id).filter(Product.id == payload.download_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

    client_ip = payload.user_ip or (request.client.host if request.client else None)
    user_agent = payload.user_agent if payload.user_agent is not None else request.headers.get("user-agent", "")

    return record_download(
        db,
        download_id=payload.download_id,
        status=payload.status,
        user_id=user.id if user else 0,
        user_ip=client_ip,
        user_agent=user_agent,
        now=clock(),
    )


@router.get("/events", response_model=List[DownloadEventOut])
def list_download_events(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
    limit: int = 100,
    offset: int = 0,
    download_id: Optional[int] = None,
    status: Optional[DownloadStatus] = None,
) -> List[DownloadEventOut]:
    query = db.query(DownloadEvent)
    if download_id:
        query = query.filter(DownloadEvent.download_id == download_id)
    if status is not None:
        query = query.filter(DownloadEvent.status == status.value)
    return query.order_by(DownloadEvent.id.desc()).offset(offset).limit(limit).all()
