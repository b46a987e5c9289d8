from typing import Optional
import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.api.deps import require_roles
from app.core.db import get_db
from app.core.fsm import TicketStatus
from app.models.ticket import Ticket
from app.models.user import User, UserRole
from app.schemas.pagination import Pagination
from app.schemas.stats import DashboardStats, DashboardStatsResponse, TicketStatusCounts, UserCounts
from app.schemas.user import AgentCreate, UserListResponse, UserResponse, UserUpdate

router = APIRouter(prefix="/admin", tags=["Admin"])

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


@router.get("/users", response_model=UserListResponse)
def get_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = None,
    status: Optional[str] = Query(None, description="'active' or 'inactive'"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles(UserRole.ADMIN)),
):
    query = db.query(User)
    if role and role != "all":
        query = query.filter(User.role == role)
    if status == "active":
        query = query.filter(User.is_active.is_(True))
    elif status == "inactive":
        query = query.filter(User.is_active.is_(False))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"users": users, "pagination": Pagination.build(page, limit, total)}


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    update_data: UserUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles(UserRole.ADMIN)),
):
    """
    Change a user's role or activation. Admins cannot deactivate themselves.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.id == admin.id and update_data.is_active is False:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot deactivate your own account")

    if update_data.role is not None:
        user.role = update_data.role.value
    if update_data.is_active is not None:
        user.is_active = update_data.is_active
    db.commit()
    db.refresh(user)
    return user


@router.post("/users/agent", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_agent(
    agent_in: AgentCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles(UserRole.ADMIN)),
):
    if db.query(User).filter(User.email == agent_in.email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    agent = User(
        name=agent_in.name,
        email=agent_in.email,
        role=UserRole.AGENT,
        is_active=True,
        password_hash=hash_password(agent_in.password),
    )
    try:
        db.add(agent)
        db.commit()
        db.refresh(agent)
        return agent
    except Exception as e:
        db.rollback()
        raise e


@router.get("/stats", response_model=DashboardStatsResponse)
def get_stats(db: Session = Depends(get_db), admin: User = Depends(require_roles(UserRole.ADMIN))):
    """
    Dashboard statistics: ticket counts by status, category and priority, user counts,
    and the five most recent tickets.
    """
    by_status = dict(db.query(Ticket.status, func.count(Ticket.id)).group_by(Ticket.status).all())
    tickets = TicketStatusCounts(
        total=sum(by_status.values()),
        open=by_status.get(TicketStatus.OPEN, 0),
        in_progress=by_status.get(TicketStatus.IN_PROGRESS, 0),
        closed=by_status.get(TicketStatus.CLOSED, 0),
        urgent=db.query(Ticket).filter(Ticket.priority == "urgent", Ticket.status != TicketStatus.CLOSED).count(),
    )
    users = UserCounts(
        total=db.query(User).filter(User.role == UserRole.USER).count(),
        active=db.query(User).filter(User.role == UserRole.USER, User.is_active.is_(True)).count(),
        agents=db.query(User).filter(User.role == UserRole.AGENT).count(),
    )
    by_category = dict(db.query(Ticket.category, func.count(Ticket.id)).group_by(Ticket.category).all())
    by_priority = dict(db.query(Ticket.priority, func.count(Ticket.id)).group_by(Ticket.priority).all())
    recent = db.query(Ticket).order_by(Ticket.created_at.desc(), Ticket.id.desc()).limit(5).all()

    return {
        "stats": DashboardStats(tickets=tickets, users=users, by_category=by_category, by_priority=by_priority),
        "recent_tickets": recent,
    }
