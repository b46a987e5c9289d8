import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from app.core.fsm import AUTO_RESOLVE_THRESHOLD, TicketStateMachine, TicketStatus, ResolvedBy
from app.models.ticket import Ticket
from app.models.user import User, UserRole
from app.schemas.ticket import TicketCreate, TicketUpdate
from app.services.analysis import AnalysisFailure, DegradedAnalysis, TicketAnalyzer
from app.services.audit import AuditAction, PerformerType, record_audit

logger = logging.getLogger(__name__)

class TicketWorkflow:
    """
    Ticket intake, AI auto-resolution and manual agent updates.

    The ticket row and each audit entry are committed as separate writes.
    """

    def __init__(self, db: Session, analyzer: Optional[TicketAnalyzer] = None):
        self.db = db
        self.analyzer = analyzer
        self.fsm = TicketStateMachine()

    def create_ticket(self, creator: User, data: TicketCreate) -> Ticket:
        if self.analyzer is None:
            raise ValueError("TicketWorkflow needs an analyzer to create tickets")

        ticket = Ticket(
            user_id=creator.id,
            title=data.title,
            description=data.description,
            category=data.category,
            priority=data.priority.value,
            status=TicketStatus.OPEN,
        )
        self.db.add(ticket)
        self.db.commit()
        self.db.refresh(ticket)

        # Creation is labelled as an agent action whoever the creator is
        record_audit(
            self.db,
            ticket_id=ticket.id,
            action=AuditAction.TICKET_CREATED,
            performed_by=creator.id,
            performed_by_type=PerformerType.AGENT,
            details=f"Ticket created: {ticket.title}",
        )

        self.run_analysis(ticket)
        return ticket

    def run_analysis(self, ticket: Ticket) -> Ticket:
        try:
            outcome = self.analyzer.analyze(self.db, ticket)
        except AnalysisFailure:
            logger.exception("AI analysis failed for ticket %s", ticket.id)
            ticket.status = TicketStatus.IN_PROGRESS
            self.db.commit()
            self.db.refresh(ticket)
            return ticket

        result = outcome.result
        record_audit(
            self.db,
            ticket_id=ticket.id,
            action=AuditAction.AI_ANALYSIS,
            performed_by_type=PerformerType.AI,
            details=result.response,
            confidence=result.confidence,
            metadata_info={
                "reasoning": result.reasoning,
                "suggestedActions": result.suggested_actions,
                "requiresHumanReview": result.requires_human_review,
                "degraded": isinstance(outcome, DegradedAnalysis),
            },
        )

        ticket.ai_confidence = result.confidence
        if result.confidence >= AUTO_RESOLVE_THRESHOLD:
            self.fsm.close(ticket, resolution=result.response[:2000], resolved_by=ResolvedBy.AI)
            self.db.commit()
            self.db.refresh(ticket)
            logger.info("Ticket %s auto-resolved with confidence %.2f", ticket.id, result.confidence)
            record_audit(
                self.db,
                ticket_id=ticket.id,
                action=AuditAction.TICKET_CLOSED,
                performed_by_type=PerformerType.AI,
                details=f"Ticket auto-resolved by AI with {round(result.confidence * 100)}% confidence",
                confidence=result.confidence,
            )
        else:
            self.fsm.transition(ticket, TicketStatus.IN_PROGRESS)
            self.db.commit()
            self.db.refresh(ticket)
            logger.info("Ticket %s left for agents (confidence %.2f)", ticket.id, result.confidence)
        return ticket

    def update_ticket(self, ticket: Ticket, actor: User, update: TicketUpdate) -> Ticket:
        """
        Apply an agent or admin update and record exactly one status_updated entry.
        Only provided, non-empty fields are applied.
        """
        updates: Dict[str, Any] = {}
        if update.status is not None:
            updates["status"] = update.status.value
        if update.resolution:
            updates["resolution"] = update.resolution
        if update.assigned_to:
            assignee = self.db.query(User).filter(User.id == update.assigned_to).first()
            if not assignee or not assignee.is_active or assignee.role not in (UserRole.AGENT, UserRole.ADMIN):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Tickets can only be assigned to an active agent or admin."
                )
            updates["assigned_to"] = update.assigned_to

        new_status = updates.get("status", ticket.status)
        if new_status == TicketStatus.CLOSED and not ticket.resolved_at:
            updates["resolved_at"] = datetime.utcnow()
            updates["resolved_by"] = ResolvedBy.AGENT

        if "resolution" in updates:
            ticket.resolution = updates["resolution"]
        if "assigned_to" in updates:
            ticket.assigned_to = updates["assigned_to"]
        if "resolved_at" in updates:
            ticket.resolved_at = updates["resolved_at"]
            ticket.resolved_by = updates["resolved_by"]

        try:
            self.fsm.transition(ticket, new_status)
        except HTTPException:
            self.db.rollback()
            raise

        self.db.commit()
        self.db.refresh(ticket)

        record_audit(
            self.db,
            ticket_id=ticket.id,
            action=AuditAction.STATUS_UPDATED,
            performed_by=actor.id,
            performed_by_type=actor.role,
            details=f"Ticket updated: {json.dumps(updates, default=str)}",
        )
        return ticket
