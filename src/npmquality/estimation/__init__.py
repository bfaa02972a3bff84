"""Per-package estimation and aggregation."""

from npmquality.estimation.aggregator import aggregate
from npmquality.estimation.estimator import Estimator

__all__ = ["Estimator", "aggregate"]
