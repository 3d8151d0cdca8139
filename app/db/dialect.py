"""
Dialect-specific INSERT constructs.

PostgreSQL and SQLite both implement `INSERT … ON CONFLICT`; SQLAlchemy
exposes it per dialect, so pick the one matching the session's bind.
"""
from sqlalchemy.orm import Session


def insert_for(db: Session, table):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"ON CONFLICT upserts are not supported on '{dialect}'")
    return insert(table)
