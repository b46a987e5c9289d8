from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session
from app.api.deps import get_current_user, require_roles
from app.core.db import get_db
from app.models.knowledge_base import KnowledgeBaseArticle
from app.models.user import User, UserRole
from app.schemas.knowledge_base import ArticleCreate, ArticleListResponse, ArticleResponse, ArticleUpdate
from app.schemas.pagination import Pagination

router = APIRouter(prefix="/knowledge-base", tags=["Knowledge Base"])

def get_article_or_404(db: Session, article_id: int) -> KnowledgeBaseArticle:
    article = db.query(KnowledgeBaseArticle).filter(KnowledgeBaseArticle.id == article_id).first()
    if not article:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Knowledge base article not found")
    return article


@router.get("", response_model=ArticleListResponse)
def get_articles(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    List active articles, newest first. `search` matches title, content and tags case-insensitively.
    """
    query = db.query(KnowledgeBaseArticle).filter(KnowledgeBaseArticle.is_active.is_(True))
    if category and category != "all":
        query = query.filter(KnowledgeBaseArticle.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                KnowledgeBaseArticle.title.ilike(pattern),
                KnowledgeBaseArticle.content.ilike(pattern),
                cast(KnowledgeBaseArticle.tags, String).ilike(pattern),
            )
        )

    total = query.count()
    articles = (
        query.order_by(KnowledgeBaseArticle.created_at.desc(), KnowledgeBaseArticle.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"articles": articles, "pagination": Pagination.build(page, limit, total)}


@router.post("", response_model=ArticleResponse, status_code=status.HTTP_201_CREATED)
def create_article(
    article_in: ArticleCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.ADMIN)),
):
    article = KnowledgeBaseArticle(
        title=article_in.title,
        content=article_in.content,
        category=article_in.category,
        tags=article_in.tags,
        created_by=user.id,
    )
    try:
        db.add(article)
        db.commit()
        db.refresh(article)
        return article
    except Exception as e:
        db.rollback()
        raise e


@router.get("/{article_id}", response_model=ArticleResponse)
def get_article(article_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Retrieve a single active article and count the view.
    """
    article = get_article_or_404(db, article_id)
    if not article.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Knowledge base article not found")
    article.views += 1
    db.commit()
    db.refresh(article)
    return article


@router.patch("/{article_id}", response_model=ArticleResponse)
def update_article(
    article_id: int,
    update_data: ArticleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(UserRole.ADMIN)),
):
    article = get_article_or_404(db, article_id)
    for field, value in update_data.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(article, field, value)
    try:
        db.commit()
        db.refresh(article)
        return article
    except Exception as e:
        db.rollback()
        raise e


@router.delete("/{article_id}", status_code=status.HTTP_200_OK)
def delete_article(article_id: int, db: Session = Depends(get_db), user: User = Depends(require_roles(UserRole.ADMIN))):
    article = get_article_or_404(db, article_id)
    db.delete(article)
    db.commit()
    return {"message": "Knowledge base article deleted successfully"}
