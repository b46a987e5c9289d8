import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
from app.models.ticket import AuditLog

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 2000

class AuditAction:
    TICKET_CREATED = "ticket_created"
    AI_ANALYSIS = "ai_analysis"
    AGENT_ASSIGNED = "agent_assigned"
    STATUS_UPDATED = "status_updated"
    RESPONSE_ADDED = "response_added"
    TICKET_CLOSED = "ticket_closed"
    TICKET_REOPENED = "ticket_reopened"

class PerformerType:
    AI = "AI"
    AGENT = "agent"
    ADMIN = "admin"
    SYSTEM = "system"


def record_audit(
    db: Session,
    ticket_id: int,
    action: str,
    performed_by_type: str,
    details: str,
    performed_by: Optional[int] = None,
    confidence: Optional[float] = None,
    metadata_info: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Append one entry to a ticket's audit trail and commit it.

    This is the only write path for AuditLog; entries are never updated or deleted.
    Details longer than the column allows are truncated.
    """
    entry = AuditLog(
        ticket_id=ticket_id,
        action=action,
        performed_by=performed_by,
        performed_by_type=performed_by_type,
        details=(details or "")[:MAX_DETAILS_LENGTH],
        confidence=confidence,
        metadata_info=metadata_info,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.debug("Audit %s recorded for ticket %s by %s", action, ticket_id, performed_by_type)
    return entry


def list_ticket_audit(db: Session, ticket_id: int) -> List[AuditLog]:
    """Entries for one ticket, most recent first."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.ticket_id == ticket_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .all()
    )


def search_audit(
    db: Session,
    skip: int = 0,
    limit: int = 20,
    action: Optional[str] = None,
    performed_by_type: Optional[str] = None,
) -> Tuple[List[AuditLog], int]:
    query = db.query(AuditLog)
    if action is not None:
        query = query.filter(AuditLog.action == action)
    if performed_by_type is not None:
        query = query.filter(AuditLog.performed_by_type == performed_by_type)

    total = query.count()
    entries = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return entries, total


def parse_details(details: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the JSON object embedded in an entry's details, or None."""
    if not details:
        return None
    start = details.find("{")
    end = details.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(details[start:end + 1])
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
