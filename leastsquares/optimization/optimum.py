"""Optimization result: the final evaluation plus run counters."""

from __future__ import annotations

from typing import Any

import numpy as np

from leastsquares.optimization.evaluation import Evaluation


class Optimum(Evaluation):
    """Result of one ``optimize()`` call.

    Every evaluation accessor (point, residuals, cost, covariances...) is
    delegated to the final evaluation.

    Attributes
    ----------
    evaluation : Evaluation
        Evaluation at the optimal point.
    evaluations : int
        Number of model evaluations performed.
    iterations : int
        Number of iterations performed.
    """

    def __init__(self, evaluation: Evaluation, evaluations: int, iterations: int):
        super().__init__(evaluation.observation_size)
        self.evaluation = evaluation
        self.evaluations = evaluations
        self.iterations = iterations

    @classmethod
    def of(cls, evaluation: Evaluation, evaluations: int, iterations: int) -> Optimum:
        return cls(evaluation, evaluations, iterations)

    @property
    def point(self) -> np.ndarray:
        return self.evaluation.point

    @property
    def residuals(self) -> np.ndarray:
        return self.evaluation.residuals

    @property
    def jacobian(self) -> np.ndarray:
        return self.evaluation.jacobian

    @property
    def cost(self) -> float:
        return self.evaluation.cost

    def get_covariances(self, threshold: float, pseudo_inverse: bool = False) -> np.ndarray:
        return self.evaluation.get_covariances(threshold, pseudo_inverse)

    def summary(self) -> dict[str, Any]:
        """JSON-friendly summary of the result."""
        n = self.parameter_size
        m = self.observation_size
        result = {
            "point": self.point.tolist(),
            "cost": self.cost,
            "rms": self.rms,
            "chi_square": self.chi_square,
            "reduced_chi_square": self.get_reduced_chi_square(n) if m >= n else None,
            "observations": m,
            "parameters": n,
            "iterations": self.iterations,
            "evaluations": self.evaluations,
        }
        return result

    def format_for_display(self) -> str:
        """Multi-line human-readable rendering of :meth:`summary`."""
        s = self.summary()
        lines = [
            "Least-squares optimum",
            f"  point:        [{', '.join(f'{v:.10g}' for v in s['point'])}]",
            f"  cost:         {s['cost']:.6e}",
            f"  rms:          {s['rms']:.6e}",
            f"  chi-square:   {s['chi_square']:.6e}",
        ]
        if s["reduced_chi_square"] is not None:
            lines.append(f"  reduced chi2: {s['reduced_chi_square']:.6e}")
        lines.append(
            f"  iterations:   {s['iterations']} ({s['evaluations']} evaluations, "
            f"{s['observations']} observations, {s['parameters']} parameters)"
        )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"Optimum(cost={self.cost:.6e}, iterations={self.iterations}, "
            f"evaluations={self.evaluations})"
        )
