"""Shared helpers: datetime arithmetic and structured error logging."""
