from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    func,
    text,
)

from .core import Base


class VenueRecord(Base):
    """A venue document.

    Moderation and ownership columns are real columns so they can be pushed down
    to SQL; everything else stays in `payload` in whatever historical shape the
    vendor dashboard wrote it.
    """

    __tablename__ = "venues"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    vendor_id = Column(String(64), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    vendor_active = Column(Boolean, nullable=True, default=True)
    payload = Column(JSON, nullable=False, server_default=text("'{}'"))

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ReviewRecord(Base):
    __tablename__ = "reviews"
    __table_args__ = (CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    venue_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    user_name = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    reply_message = Column(Text, nullable=True)
    reply_by_id = Column(String(64), nullable=True)
    reply_by_name = Column(String(255), nullable=True)
    reply_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
