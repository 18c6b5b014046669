"""Persistence of record rules with SQLAlchemy 2.0 async."""

from recordrules.infrastructure.persistence.database import Base, DatabaseManager

__all__ = ["Base", "DatabaseManager"]
