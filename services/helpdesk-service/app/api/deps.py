"""
Request-scoped dependencies: the acting user, role gates and the ticket analyzer.

Authentication happens upstream; the gateway forwards the authenticated
user's id in the X-User-Id header and this service trusts it.
"""

import logging
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.db import get_db
from app.models.user import User
from app.services.analysis import TicketAnalyzer

logger = logging.getLogger(__name__)

def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")
    return user

def require_roles(*roles: str):
    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning("User %s with role %s denied; requires %s", user.id, user.role, roles)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return user
    return checker

def get_analyzer(request: Request) -> TicketAnalyzer:
    return TicketAnalyzer(request.app.state.completion_client, kb_limit=settings.KB_CONTEXT_LIMIT)
