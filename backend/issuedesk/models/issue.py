from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func

from issuedesk.constants.statuses import IssueStatus
from issuedesk.models.authz import Base
from issuedesk.models.types import OptionalStatusType, StatusType


class Issue(Base):
    __tablename__ = 'issues'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    device_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    complaint_type: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority_level: Mapped[str] = mapped_column(String(16), nullable=False, default='Medium', index=True)
    under_warranty: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attachment_ref: Mapped[Optional[str]] = mapped_column(String(255))
    # District id, or head-office:<branch>; old rows may hold the bare head-office tag plus ``branch``.
    location: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    branch: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    status: Mapped[IssueStatus] = mapped_column(StatusType(), nullable=False, default=IssueStatus.PENDING, index=True)
    last_requested_status: Mapped[Optional[IssueStatus]] = mapped_column(OptionalStatusType())
    submitted_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    assigned_to: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), index=True)
    # Free-text history written by the previous system; read-only, parsed into audit entries.
    legacy_comment: Mapped[Optional[str]] = mapped_column(Text)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    dc_decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    super_admin_decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reopened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class IssueAuditEntry(Base):
    """One row per audit trail entry; rows are only ever inserted."""
    __tablename__ = 'issue_audit_entries'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    issue_id: Mapped[int] = mapped_column(ForeignKey('issues.id', ondelete='CASCADE'), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actor_id: Mapped[Optional[int]] = mapped_column(Integer)
    actor_label: Mapped[str] = mapped_column(String(160), nullable=False)
    action: Mapped[Optional[str]] = mapped_column(String(32))
    text: Mapped[str] = mapped_column(Text, nullable=False)
    formatted: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint('issue_id', 'position', name='uq_issue_audit_position'),)
