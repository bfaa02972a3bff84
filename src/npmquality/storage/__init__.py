"""Document store for estimations and pending work."""

from npmquality.storage.collection import JsonCollection
from npmquality.storage.stores import EstimationStore, PendingStore, open_stores

__all__ = ["EstimationStore", "JsonCollection", "PendingStore", "open_stores"]
