"""Unit tests for bayesian_survival.config module."""
import pytest
from bayesian_survival.config import (
    AnalysisConfig,
    ExecutionConfig,
    ExecutionMode,
    SamplingConfig,
    SurvivalFrameworkConfig,
    create_execution_config,
)


class TestExecutionConfig:
    """Tests for ExecutionConfig."""

    def test_default_is_sequential(self):
        config = ExecutionConfig()
        assert config.mode == ExecutionMode.PANDAS
        assert not config.is_parallel()

    def test_pandas_mode_forces_single_job(self):
        assert ExecutionConfig(mode="pandas", n_jobs=4).n_jobs == 1

    def test_parallel(self):
        config = ExecutionConfig(mode="mp", n_jobs=3)
        assert config.is_parallel()
        assert "parallel=True" in str(config)

    def test_invalid_n_jobs(self):
        with pytest.raises(ValueError, match="n_jobs"):
            ExecutionConfig(mode="mp", n_jobs=0)

    def test_factory_picks_mode(self):
        assert create_execution_config(n_jobs=1).mode == ExecutionMode.PANDAS
        assert create_execution_config(n_jobs=2).mode == ExecutionMode.MULTIPROCESSING


class TestSamplingConfig:
    """Tests for SamplingConfig."""

    def test_defaults(self):
        """Test the full schedule: 4 chains, 2000 iterations with 1000 warmup."""
        config = SamplingConfig()
        assert (config.chains, config.iterations, config.warmup) == (4, 2000, 1000)
        assert config.draws == 1000

    @pytest.mark.parametrize("kwargs", [
        {"chains": 0},
        {"warmup": 500, "iterations": 500},
        {"cores": 0},
        {"time_budget_sec": 0.0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            SamplingConfig(**kwargs)

    def test_frozen(self):
        with pytest.raises(AttributeError):
            SamplingConfig().seed = 1


class TestSurvivalFrameworkConfig:
    """Tests for SurvivalFrameworkConfig."""

    def test_for_run_type(self):
        """Test that sample runs are shorter than production runs."""
        sample = SurvivalFrameworkConfig.for_run_type("sample")
        production = SurvivalFrameworkConfig.for_run_type("production")

        assert sample.sampling.chains < production.sampling.chains
        assert production.execution.is_parallel() or production.execution.n_jobs == 1
        assert sample.run_type == "sample"
        assert sample.analysis.n_replicates >= 1000
        assert production.analysis.n_replicates >= 1000

    def test_save_load_round_trip(self, tmp_path):
        """Test JSON persistence of every section, tuples included."""
        config = SurvivalFrameworkConfig(
            sampling=SamplingConfig(chains=3, warmup=100, iterations=300, cores=1, seed=9, time_budget_sec=120.0),
            analysis=AnalysisConfig(check_horizons=(6, 12), sensitivity_parameters=None),
            sampler="laplace",
            prior="informative",
            cache_enabled=False,
            description="round trip",
        )
        path = tmp_path / "configs" / "run.json"

        config.save(str(path))
        loaded = SurvivalFrameworkConfig.load(str(path))

        assert loaded.sampling == config.sampling
        assert loaded.analysis == config.analysis
        assert loaded.data == config.data
        assert loaded.diagnostics == config.diagnostics
        assert loaded.execution.mode == config.execution.mode
        assert (loaded.sampler, loaded.prior, loaded.cache_enabled) == ("laplace", "informative", False)
        assert loaded.description == "round trip"

    def test_to_dict_is_json_ready(self):
        data = SurvivalFrameworkConfig().to_dict()
        assert data["execution"]["mode"] == "pandas"
        assert isinstance(data["analysis"]["check_horizons"], list)
