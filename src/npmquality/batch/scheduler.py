"""Chunked batch estimation under a shared GitHub rate limit."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TypeVar

from npmquality.batch.policy import UpdatePolicy
from npmquality.dates import utcnow
from npmquality.errors import QuotaExhaustedError, StoreError, TransientFetchError, ValidationError
from npmquality.estimation.estimator import Estimator
from npmquality.models.results import Deferred
from npmquality.models.schemas import Estimation, PackageEntry, PendingRecord, RateBudget
from npmquality.storage.stores import EstimationStore, PendingStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ItemStatus(str, Enum):
    """What happened to one package of a chunk."""

    ESTIMATED = "estimated"  # Final estimation stored
    DEFERRED = "deferred"  # Continuation stored in pending
    RETAINED = "retained"  # Failed, kept in pending for a retry
    SKIPPED = "skipped"  # Not due for an update
    FAILED = "failed"  # Invalid entry or store error, not stored


@dataclass
class ItemResult:
    """Outcome of one package, before persistence."""

    name: str | None
    status: ItemStatus
    budget: RateBudget | None = None
    estimation: Estimation | None = None
    record: PendingRecord | None = None


@dataclass
class BatchSummary:
    """Counters for a batch run."""

    chunks_processed: int = 0
    estimated: int = 0
    deferred: int = 0
    skipped: int = 0
    failed: int = 0
    retryable: list[str] = field(default_factory=list)
    budget: RateBudget = field(default_factory=RateBudget)

    def record(self, item: ItemResult) -> None:
        if item.status == ItemStatus.ESTIMATED:
            self.estimated += 1
        elif item.status == ItemStatus.DEFERRED:
            self.deferred += 1
        elif item.status == ItemStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            if item.status == ItemStatus.RETAINED and item.name:
                self.retryable.append(item.name)


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most `size`, keeping order."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchScheduler:
    """Estimates a worklist in chunks, pausing when the GitHub budget runs low.

    Packages within a chunk are estimated concurrently; chunks run one after
    the other. After each chunk the results are persisted and the lowest
    remaining call count seen in the chunk is compared with the chunk size:
    if it is smaller and the quota has not reset yet, the scheduler sleeps
    until the reset before starting the next chunk.

    Packages deferred on issue pagination are resolved one at a time once
    their chunk is persisted, each after waiting for enough budget to cover
    its remaining pages. Those that still fail stay in the pending store.

    A failing package never fails its chunk. Store outages detected at the
    start of a chunk abort the run.

    Usage:
        scheduler = BatchScheduler(estimator, packages, pending, chunk_size=100)
        summary = await scheduler.run_batch(load_worklist(Path("all.json")))
        await scheduler.run_pending()
    """

    def __init__(
        self,
        estimator: Estimator,
        packages: EstimationStore,
        pending: PendingStore,
        policy: UpdatePolicy | None = None,
        chunk_size: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the scheduler.

        Args:
            estimator: Per-package estimator.
            packages: Store of final estimations.
            pending: Store of deferred and retained work.
            policy: Update policy. Defaults to UpdatePolicy().
            chunk_size: Default chunk size. None means one chunk for the whole list.
            sleep: Coroutine used to wait for the rate limit reset.
            clock: Source of the current time.
        """
        self.estimator = estimator
        self.packages = packages
        self.pending = pending
        self.policy = policy or UpdatePolicy()
        self.chunk_size = chunk_size
        self.sleep = sleep
        self.clock = clock

    def _effective_chunk_size(self, total: int, chunk_size: int | None) -> int:
        size = chunk_size or self.chunk_size or total
        return max(1, min(size, total))

    async def _check_stores(self) -> None:
        """Raise StoreUnavailableError if either store is unreachable."""
        await self.packages.ping()
        await self.pending.ping()

    async def _wait_for_budget(self, budget: RateBudget, needed_calls: int) -> None:
        """Sleep until the quota resets if the budget cannot cover `needed_calls`."""
        seconds = budget.wait_seconds(needed_calls, self.clock().timestamp())
        if seconds <= 0:
            return
        logger.info(
            f"GitHub budget low (remaining: {budget.remaining_calls}, needed: {needed_calls}). "
            f"Waiting {seconds * 1000:.0f} milliseconds for the rate limit reset"
        )
        await self.sleep(seconds)

    async def run_batch(
        self,
        worklist: Sequence[PackageEntry],
        chunk_size: int | None = None,
    ) -> BatchSummary:
        """Estimate every due package of a worklist.

        Args:
            worklist: Package entries, processed in order.
            chunk_size: Packages per chunk. Defaults to the scheduler's
                chunk size, or the whole list.

        Returns:
            BatchSummary with `chunks_processed` and per-status counters.

        Raises:
            StoreUnavailableError: If a store cannot be reached.
        """
        summary = BatchSummary()
        if not worklist:
            return summary

        size = self._effective_chunk_size(len(worklist), chunk_size)
        chunks = partition(worklist, size)
        logger.debug(f"Number of chunks: {len(chunks)}")

        for index, chunk in enumerate(chunks):
            await self._check_stores()
            logger.info(f"About to process chunk {index + 1}/{len(chunks)}: {len(chunk)} packages")

            items = await asyncio.gather(*(self._estimate_entry(entry) for entry in chunk))
            items = await asyncio.gather(*(self._persist(item) for item in items))

            budget = RateBudget.combine(item.budget for item in items)
            items, budget = await self._resolve_deferred(items, budget)
            for item in items:
                summary.record(item)
            summary.chunks_processed += 1
            summary.budget = budget
            self._log_chunk(items)

            if index < len(chunks) - 1:
                await self._wait_for_budget(budget, size)

        return summary

    async def run_pending(self, chunk_size: int | None = None) -> BatchSummary:
        """Resolve the deferred and retained work in the pending store.

        Before each chunk, the budget seen so far must cover the issue pages
        the chunk needs; otherwise the scheduler waits for the reset.

        Returns:
            BatchSummary for the pending records.

        Raises:
            StoreUnavailableError: If a store cannot be reached.
        """
        summary = BatchSummary()
        await self._check_stores()
        records = await self.pending.list_all()
        if not records:
            logger.info("No pending packages")
            return summary

        size = self._effective_chunk_size(len(records), chunk_size)
        chunks = partition(records, size)
        budget = RateBudget()

        for index, chunk in enumerate(chunks):
            await self._check_stores()
            await self._wait_for_budget(budget, sum(r.pages_needed for r in chunk))
            logger.info(f"About to process pending chunk {index + 1}/{len(chunks)}: {len(chunk)}")

            items = await asyncio.gather(*(self._resolve_record(record) for record in chunk))
            items = await asyncio.gather(*(self._persist(item) for item in items))

            budget = RateBudget.combine(item.budget for item in items)
            for item in items:
                summary.record(item)
            summary.chunks_processed += 1
            summary.budget = budget
            self._log_chunk(items)

        return summary

    async def _estimate_entry(self, entry: PackageEntry) -> ItemResult:
        """Estimate one package if it is due. Never raises."""
        if entry is None or not entry.name:
            logger.error(f"Skipping entry without name: {entry!r}")
            return ItemResult(name=None, status=ItemStatus.FAILED)

        name = entry.name
        try:
            stored = await self.packages.find(name)
        except StoreError as e:
            logger.error(f"Could not read {name} from the store: {e}")
            return ItemResult(name=name, status=ItemStatus.FAILED)

        now = self.clock()
        if not self.policy.is_due(stored, now):
            logger.debug(f"Package {name} not due until {stored.next_update}")
            return ItemResult(name=name, status=ItemStatus.SKIPPED)

        try:
            result = await self.estimator.estimate(entry)
        except Exception as e:
            return self._failed(entry, e)

        if isinstance(result, Deferred):
            record = PendingRecord(
                name=name,
                entry=entry,
                previous=result.estimation,
                continuations=result.continuations,
                created=now,
            )
            return ItemResult(name=name, status=ItemStatus.DEFERRED, budget=result.budget, record=record)

        estimation = self.policy.apply(stored, result.estimation, now)
        return ItemResult(
            name=name, status=ItemStatus.ESTIMATED, budget=result.budget, estimation=estimation
        )

    async def _resolve_record(self, record: PendingRecord) -> ItemResult:
        """Finish one pending record. Never raises."""
        name = record.name
        try:
            if record.previous is not None and record.continuations:
                result = await self.estimator.resolve_pending(record)
            else:
                result = await self.estimator.estimate(record.entry)
        except Exception as e:
            return self._failed(record.entry, e, record)

        if isinstance(result, Deferred):
            deferred = record.model_copy(
                update={
                    "previous": result.estimation,
                    "continuations": result.continuations,
                    "reason": "pagination",
                }
            )
            return ItemResult(name=name, status=ItemStatus.DEFERRED, budget=result.budget, record=deferred)

        try:
            stored = await self.packages.find(name)
        except StoreError as e:
            logger.error(f"Could not read {name} from the store: {e}")
            return ItemResult(name=name, status=ItemStatus.FAILED, budget=result.budget)

        estimation = self.policy.apply(stored, result.estimation, self.clock())
        return ItemResult(name=name, status=ItemStatus.ESTIMATED, budget=result.budget, estimation=estimation)

    def _failed(
        self,
        entry: PackageEntry,
        error: Exception,
        record: PendingRecord | None = None,
    ) -> ItemResult:
        """Turn an estimation failure into a retained pending record, if retryable."""
        name = entry.name
        if isinstance(error, ValidationError):
            logger.error(f"Error estimating {name}: {error}")
            return ItemResult(name=name, status=ItemStatus.FAILED)

        budget = None
        if isinstance(error, QuotaExhaustedError):
            reason = "quota"
            budget = error.budget
            reset = error.reset_time.isoformat() if error.reset_time else "unknown"
            logger.warning(
                f"GitHub quota exhausted while estimating {name} (resets at {reset}), "
                f"keeping it pending: {error}"
            )
        elif isinstance(error, TransientFetchError):
            reason = "fetch"
            logger.error(f"Error estimating {name}, keeping it pending: {error}")
        else:
            reason = "error"
            logger.exception(f"Unexpected error estimating {name}, keeping it pending")

        if record is None:
            record = PendingRecord(name=name, entry=entry, reason=reason, created=self.clock())
        else:
            record = record.model_copy(update={"reason": reason})
        return ItemResult(name=name, status=ItemStatus.RETAINED, budget=budget, record=record)

    async def _resolve_deferred(
        self, items: Sequence[ItemResult], budget: RateBudget
    ) -> tuple[list[ItemResult], RateBudget]:
        """Resolve the continuations a chunk left behind, one record at a time.

        Each record waits for enough budget to cover its issue pages. A record
        whose resolution fails stays in pending for `run_pending`.

        Returns:
            The chunk's items with deferred ones replaced by their outcome,
            and the latest budget seen.
        """
        resolved = []
        for item in items:
            if item.status != ItemStatus.DEFERRED:
                resolved.append(item)
                continue
            await self._wait_for_budget(budget, item.record.pages_needed)
            result = await self._persist(await self._resolve_record(item.record))
            if result.budget is not None and result.budget.remaining_calls is not None:
                budget = result.budget
            resolved.append(result)
        return resolved, budget

    async def _persist(self, item: ItemResult) -> ItemResult:
        """Write one result to the store.

        Store errors are logged, not raised; the item comes back FAILED.
        """
        try:
            if item.status == ItemStatus.ESTIMATED:
                await self.packages.save(item.estimation)
                await self.pending.remove(item.name)
            elif item.status in (ItemStatus.DEFERRED, ItemStatus.RETAINED):
                await self.pending.save(item.record)
        except StoreError as e:
            logger.error(f"Package {item.name} could not be saved: {e}")
            return replace(item, status=ItemStatus.FAILED)
        return item

    def _log_chunk(self, items: list[ItemResult]) -> None:
        counts = {status: 0 for status in ItemStatus}
        for item in items:
            counts[item.status] += 1
        logger.info(
            "Chunk processed. "
            + ", ".join(f"{status.value}: {count}" for status, count in counts.items())
        )
