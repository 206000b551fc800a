"""Unit tests for configuration management.

Tests for ConfigManager loading, validation and the factories it drives.
"""

import json
import logging

import pytest
import yaml

from leastsquares.config.manager import ConfigManager
from leastsquares.optimization.convergence import (
    EvaluationRmsChecker,
    EvaluationVectorChecker,
)
from leastsquares.optimization.exceptions import ConfigurationError
from leastsquares.optimization.gauss_newton import Decomposition, GaussNewtonOptimizer
from leastsquares.optimization.levenberg_marquardt import LevenbergMarquardtOptimizer


@pytest.fixture
def write_config(tmp_path):
    """Write configuration text to a file and return its path."""

    def _write(content, name="config.yaml"):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


class TestDefaults:
    def test_default_sections(self):
        config = ConfigManager().get_config()
        assert config["optimizer"]["method"] == "levenberg_marquardt"
        assert config["convergence"]["checker"] == "residuals"
        assert config["problem"]["max_evaluations"] == 1000
        assert config["logging"]["level"] == "INFO"

    def test_default_optimizer(self):
        optimizer = ConfigManager().create_optimizer()
        assert optimizer == LevenbergMarquardtOptimizer()

    def test_default_checker(self):
        checker = ConfigManager().create_checker()
        assert isinstance(checker, EvaluationVectorChecker)
        assert checker.compare == "residuals"
        assert checker.relative_tolerance == 1e-10
        assert checker.max_iterations is None

    def test_default_problem_settings(self):
        assert ConfigManager().problem_settings() == {
            "max_evaluations": 1000,
            "max_iterations": 1000,
            "lazy": False,
        }


class TestLoading:
    def test_yaml_file(self, write_config):
        path = write_config(
            "optimizer:\n"
            "  method: gauss_newton\n"
            "  gauss_newton:\n"
            "    decomposition: lu\n"
            "problem:\n"
            "  max_evaluations: 50\n"
        )
        manager = ConfigManager(path)
        config = manager.get_config()
        assert config["optimizer"]["method"] == "gauss_newton"
        assert config["problem"]["max_evaluations"] == 50
        # untouched defaults survive the merge
        assert config["problem"]["max_iterations"] == 1000
        assert config["optimizer"]["levenberg_marquardt"] == {}

    def test_json_file(self, write_config):
        content = json.dumps({"convergence": {"checker": "rms", "relative_tolerance": 1e-8}})
        manager = ConfigManager(write_config(content, "config.json"))
        assert manager.get_config()["convergence"]["checker"] == "rms"

    def test_empty_file(self, write_config):
        manager = ConfigManager(write_config(""))
        assert manager.get_config() == ConfigManager().get_config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigManager(tmp_path / "absent.yaml")

    def test_yaml_parse_error(self, write_config):
        with pytest.raises(ConfigurationError, match="Unable to parse") as exc_info:
            ConfigManager(write_config("optimizer: [unclosed\n"))
        assert isinstance(exc_info.value.__cause__, yaml.YAMLError)

    def test_json_parse_error(self, write_config):
        with pytest.raises(ConfigurationError, match="Unable to parse"):
            ConfigManager(write_config("{not json", "config.json"))

    def test_non_mapping(self, write_config):
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            ConfigManager(write_config("- a\n- b\n"))

    def test_override_takes_precedence(self, write_config):
        path = write_config("optimizer:\n  method: gauss_newton\n")
        manager = ConfigManager(path, config_override={"optimizer": {"method": "lm"}})
        assert isinstance(manager.create_optimizer(), LevenbergMarquardtOptimizer)


class TestValidation:
    def test_unknown_method(self):
        with pytest.raises(ConfigurationError, match="Unknown optimizer"):
            ConfigManager(config_override={"optimizer": {"method": "simplex"}})

    @pytest.mark.parametrize("method", ["gn", "Gauss-Newton", "gauss newton"])
    def test_method_aliases(self, method):
        manager = ConfigManager(config_override={"optimizer": {"method": method}})
        assert isinstance(manager.create_optimizer(), GaussNewtonOptimizer)

    def test_unknown_checker(self):
        with pytest.raises(ConfigurationError, match="Unknown convergence checker"):
            ConfigManager(config_override={"convergence": {"checker": "gradient"}})


class TestFactories:
    def test_gauss_newton_settings(self):
        manager = ConfigManager(
            config_override={
                "optimizer": {
                    "method": "gauss_newton",
                    "gauss_newton": {"decomposition": "lu", "singularity_threshold": 1e-9},
                }
            }
        )
        optimizer = manager.create_optimizer()
        assert optimizer.decomposition is Decomposition.LU
        assert optimizer.singularity_threshold == 1e-9

    def test_string_numbers_from_yaml(self, write_config):
        # YAML 1.1 reads 1e-12 without a dot as a string
        path = write_config(
            "optimizer:\n"
            "  levenberg_marquardt:\n"
            "    cost_relative_tolerance: 1e-12\n"
            "    initial_step_bound_factor: 10\n"
        )
        optimizer = ConfigManager(path).create_optimizer()
        assert optimizer.cost_relative_tolerance == 1e-12
        assert optimizer.initial_step_bound_factor == 10

    def test_invalid_optimizer_setting(self):
        manager = ConfigManager(
            config_override={"optimizer": {"levenberg_marquardt": {"damping": 2.0}}}
        )
        with pytest.raises(ConfigurationError, match="Invalid settings"):
            manager.create_optimizer()

    def test_point_checker(self):
        manager = ConfigManager(
            config_override={"convergence": {"checker": "point", "max_iterations": "7"}}
        )
        checker = manager.create_checker()
        assert isinstance(checker, EvaluationVectorChecker)
        assert checker.compare == "point"
        assert checker.max_iterations == 7

    def test_rms_checker(self):
        manager = ConfigManager(
            config_override={
                "convergence": {"checker": "RMS", "relative_tolerance": 0.0, "absolute_tolerance": 1e-6}
            }
        )
        checker = manager.create_checker()
        assert isinstance(checker, EvaluationRmsChecker)
        assert checker.absolute_tolerance == 1e-6

    def test_no_checker(self):
        manager = ConfigManager(config_override={"convergence": {"checker": "none"}})
        assert manager.create_checker() is None

    def test_lazy_problem_setting(self):
        manager = ConfigManager(config_override={"problem": {"lazy": True, "max_iterations": "20"}})
        settings = manager.problem_settings()
        assert settings["lazy"] is True
        assert settings["max_iterations"] == 20


class TestUpdates:
    def test_update_existing_key(self):
        manager = ConfigManager()
        manager.update_config("optimizer.method", "gauss_newton")
        assert isinstance(manager.create_optimizer(), GaussNewtonOptimizer)

    def test_update_creates_sections(self):
        manager = ConfigManager()
        manager.update_config("output.summary.format", "json")
        assert manager.get_config()["output"]["summary"]["format"] == "json"

    def test_apply_logging(self):
        manager = ConfigManager(config_override={"logging": {"level": "DEBUG"}})
        try:
            manager.apply_logging()
            assert logging.getLogger("leastsquares").level == logging.DEBUG
        finally:
            ConfigManager().apply_logging()
        assert logging.getLogger("leastsquares").level == logging.INFO
