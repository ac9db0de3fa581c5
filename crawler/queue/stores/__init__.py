"""
Job store backends.
"""

from crawler.queue.stores.base import JobMutation, JobStore
from crawler.queue.stores.memory import InMemoryJobStore
from crawler.queue.stores.sqlalchemy_store import SQLAlchemyJobStore

__all__ = ["InMemoryJobStore", "JobMutation", "JobStore", "SQLAlchemyJobStore"]
