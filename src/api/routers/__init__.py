"""
API Routers package.

- jobs: enqueue and inspect calculation jobs
- scheduler: job service control plane and scheduled entries
- calculations: catalog and per-area scheduling
"""

from . import calculations, jobs, scheduler

__all__ = ["calculations", "jobs", "scheduler"]
