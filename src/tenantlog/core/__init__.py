"""
Core pipeline components.

- Normalizer and enqueuer (ingest side)
- Redactor, message processor and batch processor (worker side)
- Queue and record store clients
- Metrics and health checks
"""
