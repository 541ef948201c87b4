"""Audit service for logging billing entity lifecycle events."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from waterflow.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service for audit log operations.

    Entries are added to the caller's session, so they commit or roll back
    together with the change they describe.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        before_state: dict[str, Any] | None = None,
        after_state: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        Args:
            db: Database session
            entity_type: Type of entity ("reading", "invoice", "payment", ...)
            entity_id: Primary key of the entity
            action: Action performed ("create", "update", ...)
            actor_id: Operator who performed the action (optional)
            before_state: JSON snapshot before the change (None for creations)
            after_state: JSON snapshot after the change

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            before_state=before_state,
            after_state=after_state,
        )
        db.add(audit)
        logger.debug("[AUDIT] %s %s %s by %s", action, entity_type, entity_id, actor_id)
        return audit


__all__ = ["AuditService"]
