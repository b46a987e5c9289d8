from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from app.api.deps import get_analyzer, get_current_user, require_roles
from app.core.db import get_db
from app.models.ticket import Ticket
from app.models.user import User, UserRole
from app.schemas.pagination import Pagination
from app.schemas.ticket import (
    TicketCreate,
    TicketCreatedResponse,
    TicketDetailResponse,
    TicketListResponse,
    TicketUpdate,
    TicketUpdatedResponse,
)
from app.services.analysis import TicketAnalyzer
from app.services.audit import list_ticket_audit
from app.services.workflow import TicketWorkflow

router = APIRouter(prefix="/tickets", tags=["Tickets"])

def get_ticket_or_404(db: Session, ticket_id: int) -> Ticket:
    ticket = db.query(Ticket).filter(Ticket.id == ticket_id).first()
    if not ticket:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return ticket

def _filter_value(value: Optional[str]) -> Optional[str]:
    return None if value in (None, "", "all") else value


@router.post("", response_model=TicketCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    ticket_in: TicketCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    analyzer: TicketAnalyzer = Depends(get_analyzer),
):
    """
    File a new ticket and run AI analysis on it before responding.
    Analysis problems never fail the request; the ticket is left for agents instead.
    """
    ticket = TicketWorkflow(db, analyzer).create_ticket(user, ticket_in)
    return {"message": "Ticket created successfully", "ticket": ticket}


@router.get("/my-tickets", response_model=TicketListResponse)
def get_my_tickets(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(Ticket).filter(Ticket.user_id == user.id)
    total = query.count()
    tickets = query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"tickets": tickets, "pagination": Pagination.build(page, limit, total)}


@router.get("", response_model=TicketListResponse)
def get_tickets(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.AGENT, UserRole.ADMIN)),
):
    """
    Retrieve tickets for agents and admins with optional filtering.
    A filter value of "all" is the same as no filter.
    """
    query = db.query(Ticket)

    if _filter_value(status) is not None:
        query = query.filter(Ticket.status == status)
    if _filter_value(priority) is not None:
        query = query.filter(Ticket.priority == priority)
    if _filter_value(category) is not None:
        query = query.filter(Ticket.category == category)

    total = query.count()
    tickets = query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"tickets": tickets, "pagination": Pagination.build(page, limit, total)}


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_ticket(ticket_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Retrieve a ticket together with its audit trail, most recent entry first.
    """
    ticket = get_ticket_or_404(db, ticket_id)
    if user.role == UserRole.USER and ticket.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return {"ticket": ticket, "audit_logs": list_ticket_audit(db, ticket.id)}


@router.patch("/{ticket_id}", response_model=TicketUpdatedResponse)
def update_ticket(
    ticket_id: int,
    update_data: TicketUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.AGENT, UserRole.ADMIN)),
):
    """
    Update status, resolution or assignee. Closing stamps the resolution time
    and marks the ticket as agent-resolved if it was never resolved before.
    """
    ticket = get_ticket_or_404(db, ticket_id)
    ticket = TicketWorkflow(db).update_ticket(ticket, user, update_data)
    return {"message": "Ticket updated successfully", "ticket": ticket}
