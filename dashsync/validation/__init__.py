"""Data validation and freshness monitoring."""

from .data_validation_service import DataValidationService
from .health import HealthSurface

__all__ = ["DataValidationService", "HealthSurface"]
