from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from app.api.deps import get_current_user, require_roles
from app.core.db import get_db
from app.models.ticket import Ticket
from app.models.user import User, UserRole
from app.schemas.pagination import Pagination
from app.schemas.ticket import AuditActionEnum, AuditLogListResponse, AuditLogResponse, PerformerTypeEnum
from app.services.audit import list_ticket_audit, search_audit

router = APIRouter(prefix="/audit", tags=["Audit"])

@router.get("/ticket/{ticket_id}", response_model=List[AuditLogResponse])
def get_ticket_audit_logs(ticket_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Retrieve the audit trail of one ticket, most recent entry first.
    """
    ticket = db.query(Ticket).filter(Ticket.id == ticket_id).first()
    if not ticket:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    if user.role == UserRole.USER and ticket.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return list_ticket_audit(db, ticket_id)


@router.get("", response_model=AuditLogListResponse)
def get_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=1000),
    action: Optional[AuditActionEnum] = None,
    performed_by_type: Optional[PerformerTypeEnum] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.ADMIN)),
):
    """
    Retrieve the immutable audit log across all tickets with optional filtering.
    """
    entries, total = search_audit(
        db,
        skip=(page - 1) * limit,
        limit=limit,
        action=action.value if action else None,
        performed_by_type=performed_by_type.value if performed_by_type else None,
    )
    return {"audit_logs": entries, "pagination": Pagination.build(page, limit, total)}
