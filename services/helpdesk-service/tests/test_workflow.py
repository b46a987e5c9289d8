import pytest
from app.core.fsm import TicketStatus
from app.models.ticket import AuditLog, Ticket
from app.schemas.ticket import TicketCreate
from app.services.analysis import TicketAnalyzer
from app.services.workflow import TicketWorkflow

TICKET = TicketCreate(
    title="Payment missing",
    description="Paid yesterday, still unpaid.",
    category="billing",
    priority="high",
)


def test_create_ticket_without_analyzer_writes_nothing(db_session, end_user):
    workflow = TicketWorkflow(db_session)

    with pytest.raises(ValueError):
        workflow.create_ticket(end_user, TICKET)

    assert db_session.query(Ticket).count() == 0
    assert db_session.query(AuditLog).count() == 0


def test_create_ticket_records_degraded_analysis(db_session, end_user, billing_articles, fake_ai):
    fake_ai.reply_raw("upstream says hi")

    ticket = TicketWorkflow(db_session, TicketAnalyzer(fake_ai)).create_ticket(end_user, TICKET)

    assert ticket.status == TicketStatus.IN_PROGRESS
    assert ticket.ai_confidence == 0.5
    actions = [entry.action for entry in db_session.query(AuditLog).filter(AuditLog.ticket_id == ticket.id)]
    assert sorted(actions) == ["ai_analysis", "ticket_created"]
