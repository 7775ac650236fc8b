"""
In-process job queue.

A single bounded channel between the webhook (producer) and the worker pool (consumers).
"""

from receiver.queue.base import AdmissionResult, JobQueue

__all__ = ["AdmissionResult", "JobQueue"]
