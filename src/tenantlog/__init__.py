"""
TenantLog - Multi-tenant log ingestion pipeline

A FastAPI ingest service that normalizes log submissions and queues them,
plus a batch worker that redacts PII and writes tenant-partitioned records
with per-message failure reporting.
"""

__version__ = "0.1.0"

from .main import create_app

__all__ = ["create_app"]
