"""
AI analysis of support tickets.

The analyzer grounds a completion request in the knowledge base articles of the
ticket's category and turns the reply into an AnalysisResult. A reply that cannot
be parsed is not an error: it yields a DegradedAnalysis that still carries a
usable, low-confidence result.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Union

from sqlalchemy.orm import Session

from app.core.fsm import TicketStatus
from app.models.knowledge_base import KnowledgeBaseArticle
from app.models.ticket import Ticket
from app.services.completion import CompletionClient

logger = logging.getLogger(__name__)

NO_ARTICLES_CONFIDENCE = 0.3
FALLBACK_CONFIDENCE = 0.5
FALLBACK_RESPONSE = "AI response unavailable"
UNPARSEABLE_REASONING = "unparseable"
DEFAULT_REASONING = "No reasoning provided"

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)
_CONTROL_CHARS = re.compile(r"[\x00-\x1f]+")

INSTRUCTION = """
Analyze the following support ticket and write a helpful answer for the customer,
based on the knowledge base articles provided.

Return your answer as a single JSON object with exactly this structure:
{
  "response": "The answer to send to the customer",
  "confidence": 0.85,
  "reasoning": "Brief explanation of why you have this confidence level",
  "suggestedActions": ["action1", "action2"],
  "requiresHumanReview": false
}

Confidence must be a number between 0.0 and 1.0:
- 0.8-1.0: High confidence (the ticket can be resolved automatically)
- 0.5-0.79: Medium confidence (an agent should review the answer)
- 0.0-0.49: Low confidence (a human agent must handle the ticket)
""".strip()


class AnalysisFailure(Exception):
    """The ticket could not be analyzed (knowledge base lookup or remote call failed)."""


@dataclass
class AnalysisResult:
    response: str
    confidence: float
    reasoning: str
    suggested_actions: List[str] = field(default_factory=list)
    requires_human_review: bool = True


@dataclass(frozen=True)
class ParsedAnalysis:
    result: AnalysisResult


@dataclass(frozen=True)
class DegradedAnalysis:
    result: AnalysisResult
    reason: str


AnalysisOutcome = Union[ParsedAnalysis, DegradedAnalysis]


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def build_knowledge_context(articles: List[KnowledgeBaseArticle]) -> str:
    return "\n\n".join(f"Title: {article.title}\nContent: {article.content}" for article in articles)


def build_messages(ticket: Ticket, articles: List[KnowledgeBaseArticle]) -> List[Dict[str, str]]:
    ticket_details = (
        "Ticket Details:\n"
        f"Title: {ticket.title}\n"
        f"Description: {ticket.description}\n"
        f"Category: {ticket.category}\n"
        f"Priority: {ticket.priority}\n"
        "\n"
        "Knowledge Base Articles:\n"
        f"{build_knowledge_context(articles)}"
    )
    return [
        {"role": "system", "content": INSTRUCTION},
        {"role": "user", "content": ticket_details},
    ]


def _degraded(content: Any, reason: str) -> DegradedAnalysis:
    response = content if isinstance(content, str) and content.strip() else FALLBACK_RESPONSE
    return DegradedAnalysis(
        result=AnalysisResult(
            response=response,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=UNPARSEABLE_REASONING,
            suggested_actions=[],
            requires_human_review=True,
        ),
        reason=reason,
    )


def parse_completion(body: str) -> AnalysisOutcome:
    """Turn a raw completion body into an analysis outcome. Never raises."""
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return _degraded(None, "completion body is not JSON")
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return _degraded(None, "completion body has no message content")
    if not isinstance(content, str):
        return _degraded(None, "message content is not text")

    match = _JSON_BLOCK.search(content)
    if not match:
        return _degraded(content, "no JSON object in message content")

    # The model sometimes puts raw newlines inside JSON strings
    cleaned = _CONTROL_CHARS.sub("", match.group(0))
    try:
        data = json.loads(cleaned)
    except ValueError as exc:
        return _degraded(content, f"invalid JSON: {exc}")
    if not isinstance(data, dict):
        return _degraded(content, "JSON block is not an object")

    response = data.get("response")
    confidence = data.get("confidence")
    if not isinstance(response, str) or not response.strip():
        return _degraded(content, "missing response")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return _degraded(content, "missing numeric confidence")
    try:
        confidence = float(confidence)
    except OverflowError:
        # Integers beyond float range still clamp to the nearest bound
        confidence = 1.0 if confidence > 0 else 0.0
    if math.isnan(confidence):
        return _degraded(content, "missing numeric confidence")

    actions = data.get("suggestedActions")
    review = data.get("requiresHumanReview")
    return ParsedAnalysis(
        result=AnalysisResult(
            response=response,
            confidence=clamp_confidence(confidence),
            reasoning=data.get("reasoning") or DEFAULT_REASONING,
            suggested_actions=[str(action) for action in actions] if isinstance(actions, list) else [],
            requires_human_review=review if isinstance(review, bool) else True,
        )
    )


class TicketAnalyzer:
    def __init__(self, completion_client: CompletionClient, kb_limit: int = 10):
        self.completion_client = completion_client
        self.kb_limit = kb_limit

    def find_articles(self, db: Session, category: str) -> List[KnowledgeBaseArticle]:
        return (
            db.query(KnowledgeBaseArticle)
            .filter(KnowledgeBaseArticle.category == category, KnowledgeBaseArticle.is_active.is_(True))
            .limit(self.kb_limit)
            .all()
        )

    def analyze(self, db: Session, ticket: Ticket) -> AnalysisOutcome:
        """
        Analyze a ticket against the knowledge base and the completion service.

        When no article matches the ticket's category the ticket is moved to
        in-progress before the remote call, and the outcome is pinned to low
        confidence with human review regardless of what the service answers.

        Raises AnalysisFailure when the lookup, prompt building or remote call fails.
        """
        try:
            articles = self.find_articles(db, ticket.category)
            no_articles = not articles
            if no_articles:
                logger.info("No knowledge base articles for category %r (ticket %s)", ticket.category, ticket.id)
                ticket.status = TicketStatus.IN_PROGRESS

            messages = build_messages(ticket, articles)
            body = self.completion_client.complete(messages)
        except Exception as exc:
            raise AnalysisFailure(f"Failed to analyze ticket {ticket.id}") from exc

        outcome = parse_completion(body)
        if isinstance(outcome, DegradedAnalysis):
            logger.warning("Unparseable analysis for ticket %s: %s", ticket.id, outcome.reason)

        if no_articles:
            pinned = replace(outcome.result, confidence=NO_ARTICLES_CONFIDENCE, requires_human_review=True)
            outcome = replace(outcome, result=pinned)
        return outcome
