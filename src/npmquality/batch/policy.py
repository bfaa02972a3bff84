"""When to re-estimate a stored package, and when to check it next."""

from __future__ import annotations

from datetime import datetime

from npmquality.dates import add_years, months_between
from npmquality.models.schemas import Estimation


class UpdatePolicy:
    """Update policy for stored estimations.

    A package is due when it has never been estimated or its `next_update`
    has passed. Packages that have been tracked for a year at roughly one
    update per month are only checked again a year later.
    """

    # Months a record must have existed before the annual backoff applies
    STABLE_MONTHS = 11

    def is_due(self, stored: Estimation | None, now: datetime) -> bool:
        """True if the package should be estimated again."""
        if stored is None:
            return True
        return stored.next_update <= now

    def apply(self, stored: Estimation | None, fresh: Estimation, now: datetime) -> Estimation:
        """Carry history from the stored record into a fresh estimation.

        Args:
            stored: The record currently in the store, if any.
            fresh: The new estimation.
            now: Time of the update.

        Returns:
            The estimation to persist.
        """
        fresh = fresh.model_copy(update={"last_updated": now})
        if stored is None:
            return fresh

        times_updated = stored.times_updated + 1
        update: dict = {"created": stored.created, "times_updated": times_updated}

        months = months_between(stored.created, fresh.last_updated)
        if months > self.STABLE_MONTHS and times_updated <= months + 1:
            update["next_update"] = add_years(fresh.last_updated, 1)

        return fresh.model_copy(update=update)
