"""
Error taxonomy for the realtime delivery and data validation services.

    DashSyncError
    ├── TransientError          network failure, timeout, 5xx, stream drop (retried)
    ├── RetriesExhaustedError   retry ceiling reached (terminal status, not retried)
    ├── ValidationRunError      a validation run could not produce a verdict
    │   └── MissingDataError    cached snapshot or upstream response absent
    └── ContractViolationError  invalid arguments to a public operation (also ValueError)

Transport errors surface to subscribers only as status changes. Validation
errors propagate to whoever invoked the validation.
"""


class DashSyncError(Exception):
    """Base class for all dashsync errors."""


class TransientError(DashSyncError):
    """Recoverable I/O failure; callers retry according to their backoff policy."""


class RetriesExhaustedError(DashSyncError):
    """Raised or reported once a transport reaches its retry ceiling."""


class ValidationRunError(DashSyncError):
    """A validation run failed before a verdict could be produced."""


class MissingDataError(ValidationRunError):
    """A validation precondition (cached or upstream data) is absent."""


class ContractViolationError(DashSyncError, ValueError):
    """Invalid argument passed to a public operation. Never retried."""
