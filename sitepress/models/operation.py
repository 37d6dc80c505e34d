"""
Operation model: one row per website-generation attempt.
operation_id is immutable; status only moves forward (see STATUS_RANK).
Content maps (images, langs, colors, geometry) are frozen once processing starts.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from sitepress.db.base import Base

JsonColumn = JSON().with_variant(JSONB(), "postgresql")

STATUS_PENDING = "pending"
STATUS_PAID = "paid"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_DEPLOYED = "deployed"

# failed is terminal and sits outside the linear order
STATUS_RANK = {
    STATUS_PENDING: 0,
    STATUS_PAID: 1,
    STATUS_PROCESSING: 2,
    STATUS_COMPLETED: 3,
    STATUS_DEPLOYED: 4,
}

KIND_CREATE = "create"
KIND_UPDATE = "update"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Operation(Base):
    __tablename__ = "operations"

    operation_id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    status = Column(String, nullable=False, default=STATUS_PENDING)
    kind = Column(String, nullable=False, default=KIND_CREATE)  # create / update
    email = Column(String, nullable=False)
    project_name = Column(String, nullable=False, index=True)
    template_id = Column(String, nullable=False)
    images = Column(JsonColumn, nullable=False, default=dict)
    langs = Column(JsonColumn, nullable=False, default=dict)
    text_colors = Column(JsonColumn, nullable=False, default=dict)
    section_backgrounds = Column(JsonColumn, nullable=False, default=dict)
    image_sizes = Column(JsonColumn, nullable=False, default=dict)  # repositioned images
    image_z_indexes = Column(JsonColumn, nullable=False, default=dict)
    payment_session_id = Column(String, unique=True, nullable=True)
    failure_reason = Column(Text, nullable=True)
    deployment_commit_sha = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    deployed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, default=lambda: _utcnow() + timedelta(days=7))

    __table_args__ = (
        Index("ix_operations_status_created_at", "status", "created_at"),
        Index("ix_operations_email_created_at", "email", "created_at"),
    )
