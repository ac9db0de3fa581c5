"""
Worker pool.
"""

from crawler.workers.pool import WorkerPool, WorkerStats

__all__ = ["WorkerPool", "WorkerStats"]
