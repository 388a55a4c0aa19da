"""
Taproom - quota-gated beer enrichment and description cleanup workers.

Packages:
- taproom.core: errors, logging, settings, storage, queue transports
- taproom.execution: consumer runtime, quota, dead letters, resilience
- taproom.pipelines: enrichment, cleanup and dead-letter consumers, producers
- taproom.framework.alerts: failure alerting from execution traces
- taproom.services: external lookup and cleanup clients
"""

__version__ = "0.1.0"
