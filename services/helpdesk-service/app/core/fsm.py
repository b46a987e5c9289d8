from datetime import datetime
from typing import Optional
from fastapi import HTTPException, status
from app.models.ticket import Ticket

AUTO_RESOLVE_THRESHOLD = 0.8

class TicketStatus:
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    CLOSED = "closed"

class ResolvedBy:
    AI = "AI"
    AGENT = "agent"

# Agents may move a ticket anywhere, including reopening a closed one.
# Staying in the same status is allowed so assignment-only updates pass.
VALID_TRANSITIONS = {
    TicketStatus.OPEN: [TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.CLOSED],
    TicketStatus.IN_PROGRESS: [TicketStatus.IN_PROGRESS, TicketStatus.OPEN, TicketStatus.CLOSED],
    TicketStatus.CLOSED: [TicketStatus.CLOSED, TicketStatus.OPEN, TicketStatus.IN_PROGRESS],
}

class TicketStateMachine:
    """
    Applies status changes to a ticket in memory.
    Does NOT commit and does NOT write audit entries; the workflow owns both.
    """

    def validate_transition(self, current_status: str, new_status: str):
        if new_status not in VALID_TRANSITIONS.get(current_status, []):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "error": "Invalid status transition",
                    "current_status": current_status,
                    "attempted_status": new_status,
                    "reason": f"Transition from {current_status} to {new_status} is not permitted."
                }
            )

    def transition(self, ticket: Ticket, new_status: str) -> Ticket:
        self.validate_transition(ticket.status, new_status)
        if new_status == TicketStatus.CLOSED and not (ticket.resolution and ticket.resolved_by):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A ticket can only be closed with a resolution."
            )
        ticket.status = new_status
        return ticket

    def close(self, ticket: Ticket, resolution: str, resolved_by: str, resolved_at: Optional[datetime] = None) -> Ticket:
        if not resolution or not resolution.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A ticket can only be closed with a resolution."
            )
        ticket.resolution = resolution
        ticket.resolved_by = resolved_by
        ticket.resolved_at = resolved_at or datetime.utcnow()
        return self.transition(ticket, TicketStatus.CLOSED)
