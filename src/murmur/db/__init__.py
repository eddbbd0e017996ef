"""Storage layer: engine, declarative base and request-scoped sessions."""

from .session import Base, create_tables, get_db

__all__ = ["Base", "create_tables", "get_db"]
