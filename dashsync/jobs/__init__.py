"""Scheduled background jobs."""

from .background_sync import BackgroundSyncJob

__all__ = ["BackgroundSyncJob"]
