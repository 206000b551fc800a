"""Configuration Management for leastsquares
==========================================

YAML/JSON configuration loading for optimizer settings, convergence
checking and problem budgets. A configuration file looks like::

    optimizer:
      method: levenberg_marquardt
      levenberg_marquardt:
        initial_step_bound_factor: 100.0
        cost_relative_tolerance: 1.0e-10
      gauss_newton:
        decomposition: qr
    convergence:
      checker: residuals
      relative_tolerance: 1.0e-10
      absolute_tolerance: 1.0e-10
    problem:
      max_evaluations: 1000
      max_iterations: 1000
    logging:
      level: INFO

Sections that are missing fall back to the defaults of
:meth:`ConfigManager._get_default_config`.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

import yaml

from leastsquares.optimization.convergence import (
    COMPARE_POINT,
    COMPARE_RESIDUALS,
    ConvergenceChecker,
    EvaluationRmsChecker,
    EvaluationVectorChecker,
)
from leastsquares.optimization.exceptions import ConfigurationError
from leastsquares.optimization.optimizer import (
    LeastSquaresOptimizer,
    OptimizerKind,
    create_optimizer,
)
from leastsquares.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

_CHECKER_KINDS = (COMPARE_RESIDUALS, COMPARE_POINT, "rms", "none")


def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _as_number(value: Any) -> Any:
    # YAML 1.1 reads "1e-10" (no dot) as a string
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


class ConfigManager:
    """Configuration manager for least-squares runs.

    Usage:
        config_manager = ConfigManager("fit.yaml")
        optimizer = config_manager.create_optimizer()
        checker = config_manager.create_checker()
        problem = factory.create(..., checker=checker, **config_manager.problem_settings())
    """

    def __init__(
        self,
        config_file: str | Path | None = None,
        config_override: dict[str, Any] | None = None,
    ):
        """Initialize configuration manager.

        Parameters
        ----------
        config_file : str or Path, optional
            Path to a YAML/JSON configuration file. Defaults are used when
            neither a file nor an override is given.
        config_override : dict, optional
            Configuration data used instead of loading from file
        """
        self.config_file = config_file
        self.config: dict[str, Any] = self._get_default_config()

        if config_override is not None:
            self.config = _merge(self.config, config_override)
            logger.info("Configuration loaded from override data")
        elif config_file is not None:
            self.load_config()

        self._validate_config()

    def load_config(self) -> None:
        """Load and parse the YAML/JSON configuration file.

        Raises
        ------
        ConfigurationError
            If the file is missing, cannot be parsed, or does not hold a
            mapping.
        """
        config_path = Path(self.config_file)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_file}")

        file_extension = config_path.suffix.lower()
        try:
            with open(config_path, encoding="utf-8") as f:
                if file_extension == ".json":
                    loaded = json.load(f)
                else:
                    loaded = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            logger.error(f"Configuration parsing error: {e}")
            raise ConfigurationError(
                f"Unable to parse configuration file {self.config_file}: {e}"
            ) from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                f"Configuration file {self.config_file} must contain a mapping, "
                f"got {type(loaded).__name__}"
            )

        self.config = _merge(self._get_default_config(), loaded)
        logger.info(f"Configuration loaded from: {self.config_file}")

    def _get_default_config(self) -> dict[str, Any]:
        """Default configuration structure."""
        return {
            "optimizer": {
                "method": OptimizerKind.LEVENBERG_MARQUARDT.value,
                "levenberg_marquardt": {},
                "gauss_newton": {},
            },
            "convergence": {
                "checker": COMPARE_RESIDUALS,
                "relative_tolerance": 1e-10,
                "absolute_tolerance": 1e-10,
                "max_iterations": None,
            },
            "problem": {
                "max_evaluations": 1000,
                "max_iterations": 1000,
                "lazy": False,
            },
            "logging": {
                "level": "INFO",
            },
        }

    def get_config(self) -> dict[str, Any]:
        """Get the current configuration dictionary."""
        return self.config

    def update_config(self, key: str, value: Any) -> None:
        """Update a configuration value using dot notation.

        Parameters
        ----------
        key : str
            Configuration key (supports dot notation like 'optimizer.method')
        value : Any
            New value to set
        """
        keys = key.split(".")
        config_ref = self.config
        for k in keys[:-1]:
            if k not in config_ref:
                config_ref[k] = {}
            config_ref = config_ref[k]
        config_ref[keys[-1]] = value

    def _validate_config(self) -> None:
        """Check names that would otherwise fail late."""
        OptimizerKind.from_name(self.config["optimizer"].get("method"))
        checker = str(self.config["convergence"].get("checker", COMPARE_RESIDUALS)).lower()
        if checker not in _CHECKER_KINDS:
            raise ConfigurationError(
                f"Unknown convergence checker '{checker}'",
                {"available": list(_CHECKER_KINDS)},
            )
        logger.debug("Configuration validation completed")

    def create_optimizer(self) -> LeastSquaresOptimizer:
        """Build the optimizer selected by ``optimizer.method``."""
        section = self.config["optimizer"]
        kind = OptimizerKind.from_name(section.get("method"))
        settings = {k: _as_number(v) for k, v in (section.get(kind.value) or {}).items()}
        optimizer = create_optimizer(kind, **settings)
        logger.debug(f"Created optimizer {optimizer!r}")
        return optimizer

    def create_checker(self) -> ConvergenceChecker | None:
        """Build the convergence checker described by ``convergence``.

        Returns None when ``checker`` is ``"none"``.
        """
        section = self.config["convergence"]
        kind = str(section.get("checker", COMPARE_RESIDUALS)).lower()
        if kind == "none":
            return None

        relative = float(section.get("relative_tolerance", 0.0))
        absolute = float(section.get("absolute_tolerance", 0.0))
        max_iterations = section.get("max_iterations")
        if max_iterations is not None:
            max_iterations = int(max_iterations)
        if kind == "rms":
            return EvaluationRmsChecker(relative, absolute, max_iterations=max_iterations)
        return EvaluationVectorChecker(
            relative, absolute, compare=kind, max_iterations=max_iterations
        )

    def problem_settings(self) -> dict[str, Any]:
        """Problem keyword arguments: budgets and the lazy flag."""
        section = self.config["problem"]
        return {
            "max_evaluations": int(section["max_evaluations"]),
            "max_iterations": int(section["max_iterations"]),
            "lazy": bool(section.get("lazy", False)),
        }

    def apply_logging(self) -> None:
        """Set the package log level from ``logging.level``."""
        configure_logging(self.config.get("logging", {}).get("level", "INFO"))
