"""
Monitor Package
===============

Background polling of stored watches.

Components:
- scheduler.py: DedupPollingScheduler (sweep loop, dedup, checkpoints)
"""

from .scheduler import DedupPollingScheduler, SweepStats, render_post

__all__ = [
    "DedupPollingScheduler",
    "SweepStats",
    "render_post",
]
