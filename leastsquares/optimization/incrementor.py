"""Bounded counters for evaluation and iteration budgets."""

from __future__ import annotations

from typing import Type

from leastsquares.optimization.exceptions import (
    ConfigurationError,
    MaxCountExceededError,
    TooManyEvaluationsError,
    TooManyIterationsError,
)


class Incrementor:
    """Monotonic counter that raises once it goes past ``maximal_count``.

    A fresh instance is created for every optimization run, so counters
    are never shared between concurrent runs.

    Parameters
    ----------
    maximal_count : int
        Largest allowed value of the counter.
    error_type : type
        Subclass of :class:`MaxCountExceededError` raised on overflow.
    """

    def __init__(
        self,
        maximal_count: int,
        error_type: Type[MaxCountExceededError] = MaxCountExceededError,
    ):
        if maximal_count <= 0:
            raise ConfigurationError(
                f"Maximal count must be positive, got {maximal_count}"
            )
        self.maximal_count = maximal_count
        self.error_type = error_type
        self._count = 0

    @classmethod
    def for_evaluations(cls, maximal_count: int) -> "Incrementor":
        return cls(maximal_count, TooManyEvaluationsError)

    @classmethod
    def for_iterations(cls, maximal_count: int) -> "Incrementor":
        return cls(maximal_count, TooManyIterationsError)

    @property
    def count(self) -> int:
        return self._count

    def can_increment(self) -> bool:
        return self._count < self.maximal_count

    def increment(self, iteration_count: int | None = None, last_point=None) -> int:
        """Increment the counter and return its new value.

        Parameters
        ----------
        iteration_count : int, optional
            Iterations completed so far, attached to the overflow error.
        last_point : np.ndarray, optional
            Last accepted point, attached to the overflow error.

        Raises
        ------
        MaxCountExceededError
            If the new value exceeds the maximal count.
        """
        self._count += 1
        if self._count > self.maximal_count:
            raise self.error_type(
                self.maximal_count,
                {"count": self._count},
                iteration_count=iteration_count,
                parameters=last_point,
            )
        return self._count

    def __repr__(self) -> str:
        return f"Incrementor(count={self._count}, maximal_count={self.maximal_count})"
