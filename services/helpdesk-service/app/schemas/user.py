from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum
from app.schemas.pagination import Pagination

class UserRoleEnum(str, Enum):
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"

class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRoleEnum
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class UserListResponse(BaseModel):
    users: List[UserResponse]
    pagination: Pagination

class UserUpdate(BaseModel):
    role: Optional[UserRoleEnum] = None
    is_active: Optional[bool] = None

class AgentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6)
    confirm_password: str = Field(..., min_length=6)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
