from typing import Any, Dict, Iterator, List, Optional, Protocol

from sqlalchemy.orm import Session

import models
from core.config import get_settings
from database import SessionLocal
from schemas.course import StoredCourse


class CourseStore(Protocol):
    def get_by_topic(self, topic: str) -> Optional[StoredCourse]: ...

    def upsert_by_topic(self, topic: str, links: List[str], outline: Optional[Dict[str, Any]]) -> StoredCourse: ...


def to_stored_course(record: models.CourseRecord) -> StoredCourse:
    return StoredCourse(
        topic=record.topic,
        links=list(record.links or []),
        outline=record.outline,
        created_at=record.created_at.isoformat() if record.created_at else None,
        updated_at=record.updated_at.isoformat() if record.updated_at else None,
    )


class CourseRepository:
    """Topic-keyed course store. Writes overwrite links and outline; the last write wins."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_topic(self, topic: str) -> Optional[StoredCourse]:
        record = self._find(topic)
        return to_stored_course(record) if record else None

    def upsert_by_topic(self, topic: str, links: List[str], outline: Optional[Dict[str, Any]]) -> StoredCourse:
        record = self._find(topic)
        if record is None:
            record = models.CourseRecord(topic=topic, links=list(links), outline=outline)
            self.db.add(record)
        else:
            record.links = list(links)
            record.outline = outline
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)
        return to_stored_course(record)

    def count(self, topic: Optional[str] = None) -> int:
        query = self.db.query(models.CourseRecord)
        if topic is not None:
            query = query.filter(models.CourseRecord.topic == topic)
        return query.count()

    def _find(self, topic: str) -> Optional[models.CourseRecord]:
        return self.db.query(models.CourseRecord).filter(models.CourseRecord.topic == topic).first()


def get_course_repository() -> Iterator[Optional[CourseStore]]:
    """FastAPI dependency: one session per request, or None when persistence is disabled."""
    if not get_settings().enable_persistence:
        yield None
        return
    db = SessionLocal()
    try:
        yield CourseRepository(db)
    finally:
        db.close()
