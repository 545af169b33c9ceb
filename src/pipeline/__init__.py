"""Job runtime for the two-stage ingestion pipeline.

- job_runner.py -- QueueWorker: reserves jobs from an IJobQueue and runs
  them through a handler with bounded concurrency and retry/backoff.
"""

from src.pipeline.job_runner import QueueWorker

__all__ = ["QueueWorker"]
