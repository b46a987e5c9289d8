from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text, JSON
from app.core.db import Base

class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False, index=True)
    priority = Column(String(20), nullable=False, default="medium", index=True)
    status = Column(String(20), nullable=False, default="open", index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    ai_confidence = Column(Float, nullable=True)
    resolution = Column(Text, nullable=True)
    resolved_by = Column(String(20), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class AuditLog(Base):
    """
    Append-only record of an action taken on a ticket.
    Rows are inserted through app.services.audit.record_audit and never updated or deleted.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    performed_by_type = Column(String(20), nullable=False)
    details = Column(String(2000), nullable=False)
    confidence = Column(Float, nullable=True)
    metadata_info = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
