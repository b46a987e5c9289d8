from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from app.schemas.pagination import Pagination

class ArticleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000)
    category: str = Field(..., min_length=1, max_length=100)
    tags: List[str] = Field(default_factory=list)

class ArticleUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=10000)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None

class ArticleResponse(BaseModel):
    id: int
    title: str
    content: str
    category: str
    tags: List[str] = []
    created_by: int
    is_active: bool
    views: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ArticleListResponse(BaseModel):
    articles: List[ArticleResponse]
    pagination: Pagination
