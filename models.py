from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CourseRecord(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    topic = Column(String(255), unique=True, index=True, nullable=False)
    links = Column(JSON, nullable=False, default=list)
    outline = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
