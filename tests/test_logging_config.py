"""Unit tests for bayesian_survival.logging_config and bayesian_survival.timing."""
import logging
import warnings
import pytest
from bayesian_survival.exceptions import CalibrationWarning, ConvergenceWarning, ExtrapolationWarning
from bayesian_survival.logging_config import (
    ProgressLogger,
    WarningLogger,
    capture_warnings,
    log_performance,
    setup_logging,
)
from bayesian_survival.timing import Timer, log_execution_time


@pytest.fixture
def logger():
    return logging.getLogger("tests.logging_config")


class TestWarningLogger:
    """Tests for WarningLogger categorization."""

    @pytest.mark.parametrize("category, expected", [
        (ConvergenceWarning, "convergence"),
        (CalibrationWarning, "calibration"),
        (ExtrapolationWarning, "extrapolation"),
    ])
    def test_pipeline_warning_classes(self, logger, category, expected):
        assert WarningLogger(logger).categorize_warning("anything", category) == expected

    @pytest.mark.parametrize("message, expected", [
        ("The rhat statistic is larger than 1.01 for some parameters", "convergence"),
        ("There were 12 divergences after tuning", "sampler"),
        ("overflow encountered in exp", "numerical"),
        ("something unrelated", "other"),
    ])
    def test_keywords(self, logger, message, expected):
        """Test categorization of third-party warning messages."""
        assert WarningLogger(logger).categorize_warning(message, UserWarning) == expected

    def test_summary_counts(self, logger):
        wl = WarningLogger(logger)
        wl.log_warning("overflow encountered in exp")
        wl.log_warning("overflow encountered in power")
        assert wl.summary() == {"numerical": 2}


class TestCaptureWarnings:
    """Tests for capture_warnings context manager."""

    def test_routes_warnings_to_logger(self, logger, caplog):
        """Test that warnings are logged with their category tag."""
        with caplog.at_level(logging.WARNING, logger="tests.logging_config"):
            with capture_warnings(logger) as wl:
                warnings.warn("median beyond observed range", ExtrapolationWarning)

        assert wl.summary() == {"extrapolation": 1}
        assert "[EXTRAPOLATION]" in caplog.text

    def test_restores_showwarning(self, logger):
        before = warnings.showwarning
        with capture_warnings(logger):
            pass
        assert warnings.showwarning is before


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_creates_log_files(self, tmp_path):
        """Test main, performance and warnings logs per run type."""
        root = setup_logging(run_type="sample", console_output=False, base_dir=str(tmp_path))
        log_performance(logging.getLogger("bayesian_survival.fitting"), "Fit completed", duration_sec=1.5)
        logging.getLogger("bayesian_survival.checks").warning("calibration off")
        for handler in root.handlers:
            handler.flush()

        logs = {p.name.split("_")[0]: p for p in (tmp_path / "sample" / "logs").iterdir()}
        assert {"main", "performance", "warnings"} <= set(logs)
        assert "duration_sec=1.5" in logs["performance"].read_text()
        assert "calibration off" in logs["warnings"].read_text()
        assert "Fit completed" not in logs["warnings"].read_text()

        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
        root.propagate = True


class TestProgressLogger:
    def test_reports_fraction(self, logger, caplog):
        with caplog.at_level(logging.INFO, logger="tests.logging_config"):
            progress = ProgressLogger(logger, total=2, desc="Sensitivity fits")
            progress.update(1, metrics={"loo": 10.5})
        assert "Sensitivity fits: 1/2 (50.0%) | loo=10.5000" in caplog.text


class TestTiming:
    """Tests for Timer and log_execution_time."""

    def test_timer_records_duration(self, logger):
        with Timer(logger, "stage") as timer:
            assert timer.elapsed() >= 0.0
        assert timer.duration >= 0.0

    def test_decorator_preserves_result(self, logger):
        @log_execution_time(logger)
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"
