import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_helpdesk.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.main import app
from app.api.deps import get_analyzer
from app.core.db import Base, get_db
from app.models.knowledge_base import KnowledgeBaseArticle
from app.models.user import User, UserRole
from app.services.analysis import TicketAnalyzer

# Setup a SQLite database file for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_helpdesk.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeCompletionClient:
    """Stands in for the remote completion service; records every request."""

    def __init__(self):
        self.calls = []
        self.content = None
        self.raw_body = None
        self.error = None

    def reply_with(self, content):
        self.content = content
        self.raw_body = None
        self.error = None

    def reply_raw(self, body):
        self.raw_body = body
        self.error = None

    def reply_json(self, **fields):
        self.reply_with("Here is my analysis:\n" + json.dumps(fields))

    def fail_with(self, error):
        self.error = error

    def complete(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        if self.raw_body is not None:
            return self.raw_body
        return json.dumps({"choices": [{"message": {"role": "assistant", "content": self.content}}]})


@pytest.fixture(scope="function")
def db_session():
    # Create the tables
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop the tables after the test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_ai():
    fake = FakeCompletionClient()
    fake.reply_json(
        response="Refresh the billing page; the payment shows within 24 hours.",
        confidence=0.92,
        reasoning="Matches the billing article",
        suggestedActions=["refresh page"],
        requiresHumanReview=False,
    )
    return fake


@pytest.fixture
def client(db_session, fake_ai):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_analyzer] = lambda: TicketAnalyzer(fake_ai)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db, name, role, is_active=True):
    user = User(name=name, email=f"{name.lower()}@example.com", role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _make_article(db, author, category, title="Payment not showing", content="Refresh the dashboard.", tags=None, is_active=True):
    article = KnowledgeBaseArticle(
        title=title,
        content=content,
        category=category,
        tags=tags or [],
        created_by=author.id,
        is_active=is_active,
    )
    db.add(article)
    db.commit()
    db.refresh(article)
    return article


@pytest.fixture
def make_user(db_session):
    return lambda name, role, is_active=True: _make_user(db_session, name, role, is_active)


@pytest.fixture
def make_article(db_session):
    def factory(author, category, **fields):
        return _make_article(db_session, author, category, **fields)
    return factory


@pytest.fixture
def headers():
    return lambda user: {"X-User-Id": str(user.id)}


@pytest.fixture
def end_user(db_session):
    return _make_user(db_session, "Alice", UserRole.USER)


@pytest.fixture
def agent(db_session):
    return _make_user(db_session, "Bob", UserRole.AGENT)


@pytest.fixture
def admin(db_session):
    return _make_user(db_session, "Carol", UserRole.ADMIN)


@pytest.fixture
def billing_articles(db_session, admin):
    return [
        _make_article(db_session, admin, "billing", title=f"Billing article {i}")
        for i in range(3)
    ]
