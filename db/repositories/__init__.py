"""
Repository layer exports.
"""

from db.repositories.scrape_job_repository import ScrapeJobRepository

__all__ = ["ScrapeJobRepository"]
