"""Database package: ORM models and engine/session factories."""
from .connection import create_engine, create_session_factory, init_db
from .models import Base

__all__ = ["Base", "create_engine", "create_session_factory", "init_db"]
