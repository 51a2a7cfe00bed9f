"""Tests for configuration loading and the variable skipper."""

import json

import pytest

from racecov.checker.variable_skipper import VariableSkipper
from racecov.config import AnalysisConfig, ConfigLoader, SkippedVariables, load_analysis_config


class TestConfig:

    def test_packaged_defaults(self):
        config = load_analysis_config()
        assert config.main_thread == "main"
        assert config.widening_threshold == 3
        assert config.strict_empty_lockset_cover is False
        assert "__VERIFIER_" in config.skipped_variables.by_name_prefix

    def test_override_file(self, tmp_path):
        path = tmp_path / "override.json"
        path.write_text(json.dumps({"widening_threshold": 1, "skipped_variables": {"by_name": ["errno"]}}))
        config = load_analysis_config(str(path))
        assert config.widening_threshold == 1
        assert config.max_iterations == 100000
        assert config.skipped_variables.by_name == ["errno"]
        assert config.skipped_variables.by_name_prefix == []

    def test_missing_override(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_analysis_config(str(tmp_path / "none.json"))

    def test_from_dict_ignores_unknown_keys(self):
        config = AnalysisConfig.from_dict({"report_self_parallel_pairs": False, "colour": "blue"})
        assert config.report_self_parallel_pairs is False
        assert config.skipped_variables == SkippedVariables()

    def test_loader_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader(str(tmp_path)).load_config("analysis")


class TestVariableSkipper:

    def setup_method(self):
        self.skipper = VariableSkipper(SkippedVariables(
            by_name=["errno"],
            by_name_prefix=["__VERIFIER_"],
            by_function=["init"],
            by_function_prefix=["__VERIFIER_atomic_"],
        ))

    def test_by_name(self):
        assert self.skipper.should_be_skipped("errno")
        assert self.skipper.should_be_skipped("__VERIFIER_nondet")
        assert not self.skipper.should_be_skipped("g")

    def test_by_function(self):
        assert self.skipper.should_be_skipped("g", "init")
        assert self.skipper.should_be_skipped("g", "__VERIFIER_atomic_begin")
        assert not self.skipper.should_be_skipped("g", "thread1")

    def test_default_skips_nothing(self):
        assert not VariableSkipper().should_be_skipped("g", "main")


if __name__ == "__main__":
    pytest.main([__file__])
