"""Batch scheduling, update policy and worklist loading."""

from npmquality.batch.policy import UpdatePolicy
from npmquality.batch.scheduler import BatchScheduler, BatchSummary, partition
from npmquality.batch.worklist import load_worklist

__all__ = ["BatchScheduler", "BatchSummary", "UpdatePolicy", "load_worklist", "partition"]
