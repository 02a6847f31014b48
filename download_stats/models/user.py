from sqlalchemy import Column, Integer, String, DateTime, func

from download_stats.db.session import Base


ROLE_ADMIN = "admin"
ROLE_USER = "user"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, server_default=ROLE_USER)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
