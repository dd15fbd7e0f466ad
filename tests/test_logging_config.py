# tests/test_logging_config.py
import logging

import pytest

from featureguard.utils.logging_config import (
    PipelineLogger,
    get_logger,
    log_execution_time,
    log_file_path,
    setup_logging,
)


class TestLoggingConfig:

    def test_setup_logging_writes_run_log(self, tmp_path):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        try:
            logger = setup_logging(log_level="DEBUG", log_dir=str(tmp_path), run_name="churn", log_to_console=False)
            logger.info("hello")
        finally:
            for handler in root.handlers:
                if handler not in handlers:
                    handler.close()
            root.handlers[:] = handlers
            root.setLevel(level)

        log_files = list(tmp_path.glob("featureguard_churn_*.log"))
        assert len(log_files) == 1
        assert "hello" in log_files[0].read_text()
        assert logging.getLogger("mlflow").level == logging.WARNING

    def test_log_file_path_without_run_name(self, tmp_path):
        path = log_file_path(tmp_path)

        assert path.parent == tmp_path
        assert path.name.startswith("featureguard_2")
        assert path.suffix == ".log"

    def test_get_logger_namespaces(self):
        assert get_logger("sanity").name == "featureguard.sanity"
        assert get_logger("featureguard.lineage").name == "featureguard.lineage"

    def test_log_execution_time_reraises(self, caplog):
        @log_execution_time
        def failing():
            raise ValueError("boom")

        with caplog.at_level(logging.INFO):
            with pytest.raises(ValueError):
                failing()
        assert any(r.message.startswith("Failed") and "failing" in r.message and "boom" in r.message
                   for r in caplog.records)

    def test_pipeline_logger_collects_metrics(self, caplog):
        logger = logging.getLogger("featureguard.test")
        with caplog.at_level(logging.INFO, logger="featureguard.test"):
            with PipelineLogger("check", logger) as step:
                step.log_metric("dropped_columns", 3)
                step.log_metric("sample_fraction", 0.5)

        messages = [r.message for r in caplog.records]
        assert "[check] Metric - dropped_columns: 3" in messages
        assert any(m.startswith("=== Completed check") for m in messages)
        assert step.metrics == {"dropped_columns": 3, "sample_fraction": 0.5}
        assert step.duration is not None and step.duration >= 0

    def test_pipeline_logger_reports_failure(self, caplog):
        logger = logging.getLogger("featureguard.test")
        with caplog.at_level(logging.INFO, logger="featureguard.test"):
            with pytest.raises(RuntimeError):
                with PipelineLogger("check", logger):
                    raise RuntimeError("no label")

        assert any(r.levelno == logging.ERROR and "no label" in r.message for r in caplog.records)
