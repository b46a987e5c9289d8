from typing import Dict, List
from pydantic import BaseModel, Field
from app.schemas.ticket import TicketResponse

class TicketStatusCounts(BaseModel):
    total: int = 0
    open: int = 0
    in_progress: int = 0
    closed: int = 0
    urgent: int = Field(0, description="Urgent tickets that are not closed.")

class UserCounts(BaseModel):
    total: int = Field(0, description="End users, excluding agents and admins.")
    active: int = 0
    agents: int = 0

class DashboardStats(BaseModel):
    tickets: TicketStatusCounts
    users: UserCounts
    by_category: Dict[str, int]
    by_priority: Dict[str, int]

class DashboardStatsResponse(BaseModel):
    stats: DashboardStats
    recent_tickets: List[TicketResponse]
