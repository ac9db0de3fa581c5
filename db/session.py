"""
db/session.py

SQLAlchemy engine and session factory.
"""

from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import normalize_postgres_url, resolve_database_url


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def create_db_engine(database_url: str | None = None) -> Engine:
    """
    Build an engine for PostgreSQL (pooled) or SQLite (local runs and tests).
    """

    url = normalize_postgres_url(database_url) if database_url else resolve_database_url()
    echo = _get_bool_env("SQL_ECHO", default=False)

    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL or SQLite URLs are supported.")

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=_get_int_env("DB_POOL_RECYCLE", 1800),
        pool_size=_get_int_env("DB_POOL_SIZE", 5),
        max_overflow=_get_int_env("DB_MAX_OVERFLOW", 10),
    )


def create_session_factory(database_url: str | None = None, *, engine: Engine | None = None) -> sessionmaker:
    return sessionmaker(
        bind=engine or create_db_engine(database_url),
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
