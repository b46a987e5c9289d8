from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum
from app.schemas.pagination import Pagination
from app.services.audit import parse_details

class TicketStatusEnum(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    CLOSED = "closed"

class TicketPriorityEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class ResolvedByEnum(str, Enum):
    AI = "AI"
    AGENT = "agent"

class AuditActionEnum(str, Enum):
    TICKET_CREATED = "ticket_created"
    AI_ANALYSIS = "ai_analysis"
    AGENT_ASSIGNED = "agent_assigned"
    STATUS_UPDATED = "status_updated"
    RESPONSE_ADDED = "response_added"
    TICKET_CLOSED = "ticket_closed"
    TICKET_REOPENED = "ticket_reopened"

class PerformerTypeEnum(str, Enum):
    AI = "AI"
    AGENT = "agent"
    ADMIN = "admin"
    SYSTEM = "system"


class AuditLogResponse(BaseModel):
    id: int
    ticket_id: int
    action: AuditActionEnum = Field(..., description="The action that was performed.")
    performed_by: Optional[int] = Field(None, description="The user who performed the action, if any.")
    performed_by_type: PerformerTypeEnum = Field(..., description="The kind of actor that performed the action.")
    details: str = Field(..., description="Human-readable details, optionally embedding one JSON object.")
    confidence: Optional[float] = Field(None, description="AI confidence attached to the action.")
    metadata_info: Optional[Dict[str, Any]] = Field(None, description="Extra structured metadata.")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def details_data(self) -> Optional[Dict[str, Any]]:
        """The JSON object embedded in details, when present."""
        return parse_details(self.details)

class AuditLogListResponse(BaseModel):
    audit_logs: List[AuditLogResponse]
    pagination: Pagination


class TicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200, description="Short summary of the problem.")
    description: str = Field(..., min_length=1, max_length=2000, description="Full description of the problem.")
    category: str = Field(..., min_length=1, max_length=100, description="Category code used to select knowledge base articles.")
    priority: TicketPriorityEnum = Field(..., description="The urgency of the ticket.")

class TicketUpdate(BaseModel):
    status: Optional[TicketStatusEnum] = None
    resolution: Optional[str] = Field(None, max_length=2000)
    assigned_to: Optional[int] = None

class TicketResponse(BaseModel):
    id: int
    user_id: int
    title: str
    description: str
    category: str
    priority: TicketPriorityEnum
    status: TicketStatusEnum
    assigned_to: Optional[int] = None
    ai_confidence: Optional[float] = None
    resolution: Optional[str] = None
    resolved_by: Optional[ResolvedByEnum] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class TicketCreatedResponse(BaseModel):
    message: str
    ticket: TicketResponse

class TicketUpdatedResponse(BaseModel):
    message: str
    ticket: TicketResponse

class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    pagination: Pagination

class TicketDetailResponse(BaseModel):
    ticket: TicketResponse
    audit_logs: List[AuditLogResponse]
