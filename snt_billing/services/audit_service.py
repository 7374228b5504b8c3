"""Audit service for logging billing mutations."""

from sqlalchemy.orm import Session

from snt_billing.models.audit_log import AuditLog


class AuditService:
    """Service for audit log operations.

    Provides static methods to create and read minimal audit log entries.
    Entries are added to the session; the calling service commits them together
    with the change they describe.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor: str | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        Args:
            db: Database session
            entity_type: Type of entity ("period", "payment", "import_batch", etc.)
            entity_id: Primary key of the entity
            action: Action performed ("create", "close", "rollback", etc.)
            actor: Staff member who performed the action (optional)
            changes: Optional JSON snapshot of changed fields

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor=actor,
            changes=changes,
        )
        db.add(audit)
        return audit

    @staticmethod
    def list_for(db: Session, entity_type: str, entity_id: int) -> list[AuditLog]:
        """Audit trail of one entity, oldest first."""
        return (
            db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
            .all()
        )


__all__ = ["AuditService"]
