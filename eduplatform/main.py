"""FastAPI entrypoint for the exam attempt and points wallet service."""

import logging
import sys

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from eduplatform.config import LOG_LEVEL, SESSION_SECRET
from eduplatform.database import create_db_and_tables
from eduplatform.errors import DomainError
from eduplatform.routers import attempts as attempts_router_module
from eduplatform.routers import exams as exams_router_module
from eduplatform.routers import notifications as notifications_router_module
from eduplatform.routers import referrals as referrals_router_module
from eduplatform.routers import users as users_router_module
from eduplatform.routers import wallet as wallet_router_module

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

app = FastAPI(title="EduPlatform Exams & Wallet API")


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Business-rule violations keep their stable error code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database failure on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "The data store is unavailable. Please retry.",
            "code": "infrastructure_error",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal server error occurred.", "code": "internal_error"},
    )


# Session cookie issued by the identity provider carries the caller's user_id
app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET)

# Routers
app.include_router(exams_router_module.router, prefix="/exams", tags=["exams"])
app.include_router(attempts_router_module.router, prefix="/attempts", tags=["attempts"])
app.include_router(wallet_router_module.router, prefix="/wallet", tags=["wallet"])
app.include_router(referrals_router_module.router, prefix="/referrals", tags=["referrals"])
app.include_router(
    notifications_router_module.router, prefix="/notifications", tags=["notifications"]
)
app.include_router(users_router_module.router, tags=["users"])


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def on_startup():
    """Initialize database schema."""
    create_db_and_tables()
    logger.info("Database schema ready")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("eduplatform.main:app", host="0.0.0.0", port=8000, reload=True)
