import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditTrail:
    """Append-only record of privileged actions.

    Entries are written after the primary operation has committed. A failed
    write is rolled back and logged; it never reaches the caller.
    """

    def __init__(self, db: Session, origin: Optional[str] = None):
        self.db = db
        self.origin = origin or "unknown"

    def record(
        self,
        actor_id: Optional[str],
        action: str,
        resource: str,
        details: str,
        origin: Optional[str] = None
    ) -> bool:
        try:
            self.db.add(AuditLog(
                user_id=actor_id,
                action=action,
                resource=resource,
                details=details,
                ip=origin or self.origin
            ))
            self.db.commit()
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Audit log error ({action}): {e}")
            return False

    def list_entries(self, skip: int = 0, limit: int = 100):
        return (
            self.db.query(AuditLog)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
