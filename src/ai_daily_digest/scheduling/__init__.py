"""Cron-style digest schedules."""

from .scheduler import DigestScheduler

__all__ = ["DigestScheduler"]
