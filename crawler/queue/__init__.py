"""
Job queue and its storage backends.
"""

from crawler.queue.job_queue import JobQueue
from crawler.queue.stores import InMemoryJobStore, JobStore, SQLAlchemyJobStore

__all__ = ["InMemoryJobStore", "JobQueue", "JobStore", "SQLAlchemyJobStore"]
