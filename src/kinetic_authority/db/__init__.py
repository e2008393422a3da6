"""Database utilities for Kinetic Authority."""

from .session import Base, SessionLocal, create_tables, drop_tables, engine

__all__ = ["Base", "SessionLocal", "create_tables", "drop_tables", "engine"]
