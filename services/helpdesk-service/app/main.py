import logging
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from sqlalchemy.orm import Session
from app.api.tickets import router as tickets_router
from app.api.knowledge_base import router as knowledge_base_router
from app.api.admin import router as admin_router
from app.api.audit import router as audit_router
from app.core.config import settings
from app.core.db import Base, engine, get_db
from app.core.logging import configure_logging
from app.services.completion import CompletionClient

configure_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    app.state.completion_client = CompletionClient.from_settings(settings)
    logger.info("%s started", settings.PROJECT_NAME)
    yield
    app.state.completion_client.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Support tickets with knowledge-base grounded AI auto-resolution and an append-only audit trail.",
    version="1.0.0",
    lifespan=lifespan,
)

@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    request_id = getattr(request.state, "request_id", None)
    logger.error("Database failure (request %s): %s", request_id, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error: database operation failed", "request_id": request_id},
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled error (request %s)", request_id)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error", "request_id": request_id},
    )

@app.get("/health", tags=["system"])
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError:
        db_status = "error"
    return {"status": "ok", "database": db_status}

app.include_router(tickets_router)
app.include_router(knowledge_base_router)
app.include_router(admin_router)
app.include_router(audit_router)
