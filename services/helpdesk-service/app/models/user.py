from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from app.core.db import Base

class UserRole:
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default=UserRole.USER, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    # Credentials are verified by the upstream auth layer
    password_hash = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
