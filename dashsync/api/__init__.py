"""
REST API for the dashboard sync service

Serves cached dashboard snapshots, validation health and the realtime event stream.
"""

from .app import create_app

__all__ = ["create_app"]
