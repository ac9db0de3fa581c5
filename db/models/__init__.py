"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.scrape_job import ScrapeJobRecord

__all__ = ["ScrapeJobRecord"]
