"""
Dashboard Sync - Realtime Delivery and Data Validation

Keeps dashboard projections of Azure DevOps sprint and work item data
consistent with the upstream system under partial failure.

Package Structure:
    - core: Infrastructure (config, logging, errors, performance log)
    - cache: In-memory TTL cache
    - domain: Domain models (events, deliveries, verdicts, health)
    - realtime: Push/pull transports and the subscription coordinator
    - validation: Data validation and freshness monitor
    - collectors: Azure DevOps REST client and upstream adapter
    - jobs: Background sync job
    - api: FastAPI service (health, validation status, polling, SSE)
"""

__version__ = "1.0.0"
__author__ = "Engineering Metrics Team"
