"""
Synexa FastAPI Application.

This package provides the REST API for Synexa routines, devices,
recurrence helpers and reminders.

Main components:
- main: FastAPI application with middleware and error handling
- models: SQLAlchemy ORM models for database entities
- schemas: Pydantic models for request/response validation
- routes: API route definitions organized by functionality
- dependencies: Reusable dependencies for database, authentication and the engine
"""

__version__ = "1.0.0"
