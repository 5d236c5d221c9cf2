"""
FastAPI dependencies for database sessions, authentication and the engine.

Provides reusable dependencies that handle database sessions, user
authentication, and construction of the routine executor and device
dispatcher for the current request.
"""

import os
import hmac
import logging
from typing import Generator, Optional
from fastapi import Depends, HTTPException, Header, status
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError

from engine.dispatcher import DeviceDispatcher
from engine.executor import RoutineExecutor
from engine.registry import ConnectorRegistry, default_registry
from engine.store import SqlRoutineStore
from observability.logging import set_request_context

from .models import User

# Database setup
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./synexa.db")
CRON_SECRET = os.getenv("CRON_SECRET")

logger = logging.getLogger(__name__)

# Create database engine with appropriate settings for database type
if DATABASE_URL.startswith("sqlite"):
    # SQLite-specific settings
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        future=True,
        connect_args={"check_same_thread": False}  # Allow SQLite across threads
    )
else:
    # PostgreSQL settings
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,   # Recycle connections every hour
        pool_size=20,        # Connection pool size
        max_overflow=40,     # Max overflow connections
        future=True          # Use SQLAlchemy 2.0 style
    )

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Connector registry shared by every request; closed to registration once built
connector_registry = default_registry()
connector_registry.freeze()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides database sessions with automatic cleanup.

    Yields a SQLAlchemy session and ensures proper cleanup on completion
    or exception. All database operations should use this dependency.
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def get_connector_registry() -> ConnectorRegistry:
    return connector_registry


def get_dispatcher(
    db: Session = Depends(get_db),
    registry: ConnectorRegistry = Depends(get_connector_registry)
) -> DeviceDispatcher:
    """Device dispatcher bound to the request's database session."""
    return DeviceDispatcher(SqlRoutineStore(db), registry)


def get_executor(
    db: Session = Depends(get_db),
    dispatcher: DeviceDispatcher = Depends(get_dispatcher)
) -> RoutineExecutor:
    """Routine executor sharing the dispatcher's store and session."""
    return RoutineExecutor(dispatcher.store, dispatcher)


async def get_current_user(
    authorization: str = Header(..., description="Bearer token for user authentication"),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency that extracts and validates the current user from auth header.

    Expects Authorization header in format: "Bearer <user-id>"
    Returns the authenticated User model or raises 401 errors.
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected 'Bearer <user-id>'",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id = authorization[7:].strip()
    try:
        user = db.query(User).filter(User.id == user_id).first()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database error during authentication"
        )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"User {user_id} not found or invalid",
            headers={"WWW-Authenticate": "Bearer"}
        )

    set_request_context(user_id=user.id)
    return user


async def verify_cron_secret(
    authorization: Optional[str] = Header(None, description="Bearer <CRON_SECRET>")
) -> None:
    """
    Dependency guarding the reminder processing endpoint.

    Open when CRON_SECRET is unset (development); otherwise the header must
    carry the secret as a bearer token.
    """
    if not CRON_SECRET:
        return
    expected = f"Bearer {CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
            headers={"WWW-Authenticate": "Bearer"}
        )


# Health check dependencies
async def check_database_health() -> bool:
    """Check if database connection is healthy."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
