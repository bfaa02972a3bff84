"""In-process result types returned by factors and the estimator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from npmquality.errors import TransientFetchError
from npmquality.models.schemas import Continuation, Estimation, FactorPair, RateBudget


@dataclass
class FactorOutcome:
    """What a single factor reports back to the estimator.

    Exactly one of `values`, `continuation` or `error` carries the outcome:
    final factor pairs, a deferred issue computation, or a fetch failure the
    estimator decides how to handle.
    """

    factor: str
    values: dict[str, FactorPair] = field(default_factory=dict)
    continuation: Continuation | None = None
    error: TransientFetchError | None = None
    budget: RateBudget | None = None

    @property
    def is_pending(self) -> bool:
        return self.continuation is not None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class Final:
    """An estimation with every factor computed and quality aggregated."""

    estimation: Estimation
    budget: RateBudget = field(default_factory=RateBudget)


@dataclass
class Deferred:
    """A partial estimation waiting on one or more continuations."""

    estimation: Estimation
    continuations: list[Continuation]
    budget: RateBudget = field(default_factory=RateBudget)


EstimationResult = Union[Final, Deferred]
