"""Audit log model for tracking billing entity lifecycle events."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from waterflow.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry for tracking changes to billing entities.

    Records who (actor_id) did what (action) to which entity (entity_type,
    entity_id), with optional snapshots of the state before and after.
    """

    __tablename__ = "audit_logs"

    action: Mapped[str] = mapped_column(String(20))
    """Action performed: "create", "update", etc."""

    entity_type: Mapped[str] = mapped_column(String(50))
    """Entity type being audited: "reading", "invoice", "payment", "customer"."""

    entity_id: Mapped[int] = mapped_column()
    """Primary key of the entity being audited."""

    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    """Operator who performed the action. None for system actions."""

    before_state: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Snapshot before the change. None for creations."""

    after_state: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Snapshot after the change."""

    __table_args__ = (Index("idx_audit_entity", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor_id={self.actor_id}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
