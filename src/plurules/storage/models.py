"""SQLAlchemy ORM models for caller-side persistence."""

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class UserOverrideRecord(Base):
    """The saved user corrections for one (document, zone).

    ``key`` follows the ``<document_id>::<ZONE_CODE>`` convention; a save
    replaces the whole row.
    """

    __tablename__ = "user_overrides"

    key = Column(String(400), primary_key=True)
    document_id = Column(String(200), nullable=False, index=True)
    zone_code = Column(String(50), nullable=False)
    overrides = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), nullable=False)
