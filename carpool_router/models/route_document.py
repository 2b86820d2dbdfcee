from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String

from carpool_router.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class RouteDocument(Base):
    __tablename__ = 'route_documents'

    id = Column(String(255), primary_key=True)  # e.g. "groups/<group_id>/route"
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
