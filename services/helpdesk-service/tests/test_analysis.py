import json
import httpx
import pytest
from app.core.fsm import TicketStatus
from app.models.ticket import Ticket
from app.services.analysis import (
    AnalysisFailure,
    DegradedAnalysis,
    ParsedAnalysis,
    TicketAnalyzer,
    build_messages,
    parse_completion,
)
from app.services.completion import CompletionClient


def completion(content):
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


def make_ticket(db_session, user, category="billing"):
    ticket = Ticket(
        user_id=user.id,
        title="Payment missing",
        description="Paid yesterday, still unpaid.",
        category=category,
        priority="high",
        status=TicketStatus.OPEN,
    )
    db_session.add(ticket)
    db_session.commit()
    db_session.refresh(ticket)
    return ticket


def test_parse_well_formed_reply():
    content = 'Sure! {"response": "Reset it.", "confidence": 0.9, "reasoning": "Known issue", ' \
              '"suggestedActions": ["reset"], "requiresHumanReview": false} Hope that helps.'
    outcome = parse_completion(completion(content))

    assert isinstance(outcome, ParsedAnalysis)
    assert outcome.result.response == "Reset it."
    assert outcome.result.confidence == 0.9
    assert outcome.result.reasoning == "Known issue"
    assert outcome.result.suggested_actions == ["reset"]
    assert outcome.result.requires_human_review is False


def test_parse_strips_raw_newlines_inside_strings():
    content = '{"response": "Step one.\nStep two.", "confidence": 0.85}'
    outcome = parse_completion(completion(content))

    assert isinstance(outcome, ParsedAnalysis)
    assert outcome.result.response == "Step one.Step two."


def test_parse_applies_defaults():
    outcome = parse_completion(completion(json.dumps({"response": "Reset it.", "confidence": 1})))

    assert isinstance(outcome, ParsedAnalysis)
    assert outcome.result.confidence == 1.0
    assert outcome.result.reasoning == "No reasoning provided"
    assert outcome.result.suggested_actions == []
    assert outcome.result.requires_human_review is True


@pytest.mark.parametrize("reported, stored", [(1.7, 1.0), (-0.2, 0.0)])
def test_parse_clamps_confidence(reported, stored):
    outcome = parse_completion(completion(json.dumps({"response": "Reset it.", "confidence": reported})))
    assert outcome.result.confidence == stored


@pytest.mark.parametrize("reported, stored", [("1" + "0" * 400, 1.0), ("-1" + "0" * 400, 0.0)])
def test_parse_clamps_integers_beyond_float_range(reported, stored):
    content = '{"response": "Reset it.", "confidence": ' + reported + "}"
    outcome = parse_completion(completion(content))

    assert isinstance(outcome, ParsedAnalysis)
    assert outcome.result.confidence == stored


@pytest.mark.parametrize("content", [
    "I could not find anything relevant.",
    '{"response": "Reset it.", "confidence": "high"}',
    '{"response": "", "confidence": 0.9}',
    '{"confidence": 0.9}',
    '{"response": "Reset it.", "confidence": true}',
    '{"response": "Reset it.", "confidence": 0.9',
])
def test_parse_degrades_on_bad_replies(content):
    outcome = parse_completion(completion(content))

    assert isinstance(outcome, DegradedAnalysis)
    assert outcome.result.response == content
    assert outcome.result.confidence == 0.5
    assert outcome.result.reasoning == "unparseable"
    assert outcome.result.suggested_actions == []
    assert outcome.result.requires_human_review is True


def test_parse_degrades_without_message_content():
    outcome = parse_completion(json.dumps({"error": "overloaded"}))

    assert isinstance(outcome, DegradedAnalysis)
    assert outcome.result.response == "AI response unavailable"


@pytest.mark.parametrize("body", ["upstream says hi", "<html>Bad gateway</html>", ""])
def test_parse_degrades_on_non_json_body(body):
    outcome = parse_completion(body)

    assert isinstance(outcome, DegradedAnalysis)
    assert outcome.reason == "completion body is not JSON"
    assert outcome.result.response == "AI response unavailable"
    assert outcome.result.confidence == 0.5


def test_messages_embed_ticket_and_articles(db_session, end_user, billing_articles):
    ticket = make_ticket(db_session, end_user)
    system, user = build_messages(ticket, billing_articles)

    assert system["role"] == "system"
    assert '"suggestedActions"' in system["content"]
    assert '"requiresHumanReview"' in system["content"]
    assert user["role"] == "user"
    assert "Title: Payment missing" in user["content"]
    assert "Priority: high" in user["content"]
    assert "Title: Billing article 0\nContent: Refresh the dashboard.\n\nTitle: Billing article 1" in user["content"]


def test_analyzer_uses_active_articles_of_category(db_session, admin, end_user, make_article, fake_ai):
    for i in range(12):
        make_article(admin, "billing", title=f"Billing {i}")
    make_article(admin, "billing", title="Retired", is_active=False)
    make_article(admin, "shipping", title="Shipping")
    ticket = make_ticket(db_session, end_user)

    analyzer = TicketAnalyzer(fake_ai)
    outcome = analyzer.analyze(db_session, ticket)

    assert isinstance(outcome, ParsedAnalysis)
    assert outcome.result.confidence == 0.92
    assert ticket.status == TicketStatus.OPEN
    user_message = fake_ai.calls[0][1]["content"]
    assert user_message.count("Title: Billing") == 10
    assert "Retired" not in user_message
    assert "Shipping" not in user_message


def test_analyzer_pins_confidence_without_articles(db_session, end_user, fake_ai):
    ticket = make_ticket(db_session, end_user, category="hardware")

    outcome = TicketAnalyzer(fake_ai).analyze(db_session, ticket)

    assert len(fake_ai.calls) == 1
    assert outcome.result.confidence == 0.3
    assert outcome.result.requires_human_review is True
    assert ticket.status == TicketStatus.IN_PROGRESS


def test_analyzer_pins_degraded_outcome_without_articles(db_session, end_user, fake_ai):
    fake_ai.reply_with("no json here")
    ticket = make_ticket(db_session, end_user, category="hardware")

    outcome = TicketAnalyzer(fake_ai).analyze(db_session, ticket)

    assert isinstance(outcome, DegradedAnalysis)
    assert outcome.result.confidence == 0.3


def test_analyzer_wraps_remote_errors(db_session, end_user, billing_articles, fake_ai):
    fake_ai.fail_with(httpx.ReadTimeout("timed out"))
    ticket = make_ticket(db_session, end_user)

    with pytest.raises(AnalysisFailure) as exc:
        TicketAnalyzer(fake_ai).analyze(db_session, ticket)
    assert isinstance(exc.value.__cause__, httpx.ReadTimeout)


def test_analyzer_degrades_on_non_json_success_body(db_session, end_user, billing_articles):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="upstream says hi"))
    client = CompletionClient("https://ai.example.com/v1/chat/completions", transport=transport)
    ticket = make_ticket(db_session, end_user)

    outcome = TicketAnalyzer(client).analyze(db_session, ticket)

    assert isinstance(outcome, DegradedAnalysis)
    assert outcome.result.response == "AI response unavailable"
    assert outcome.result.requires_human_review is True
