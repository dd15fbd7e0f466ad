# featureguard/utils/logging_config.py
import functools
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

ROOT_LOGGER_NAME = "featureguard"

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

# Libraries that log heavily at INFO during tracking runs and graph execution
QUIET_LOGGERS = ("mlflow", "urllib3", "alembic", "langgraph", "joblib")

Metric = Union[int, float]


def log_file_path(log_dir: Union[str, Path], run_name: Optional[str] = None) -> Path:
    """Timestamped log file for one run, e.g. logs/featureguard_churn_20240101_120000.log"""
    stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    parts = [ROOT_LOGGER_NAME] + ([run_name] if run_name else []) + [stamp]
    return Path(log_dir) / f"{'_'.join(parts)}.log"


def setup_logging(
    log_level: str = "INFO",
    log_dir: str = "logs",
    run_name: Optional[str] = None,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_format: Optional[str] = None
) -> logging.Logger:
    """
    Setup logging for a sanity check run

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory to store log files
        run_name: Project name added to the log file name
        log_to_file: Whether to log to file
        log_to_console: Whether to log to console
        log_format: Custom log format string

    Returns:
        The featureguard package logger
    """
    formatter = logging.Formatter(log_format or DEFAULT_FORMAT)
    level = getattr(logging, log_level.upper())

    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers to avoid duplicates
    root.handlers.clear()

    file_path = None
    if log_to_file:
        file_path = log_file_path(log_dir, run_name)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path, mode='a', encoding='utf-8')
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    configure_third_party_logging()

    pipeline_logger = logging.getLogger(ROOT_LOGGER_NAME)
    pipeline_logger.info(f"Logging initialized. Level: {log_level}")
    if file_path is not None:
        pipeline_logger.info(f"Log file: {file_path}")

    return pipeline_logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the featureguard namespace"""
    if name.startswith(ROOT_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_execution_time(func):
    """Decorator to log how long a fit or transform call takes"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        start = time.perf_counter()
        logger.info(f"Starting {func.__qualname__}")
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Failed {func.__qualname__} after {time.perf_counter() - start:.2f} seconds: {e}")
            raise
        logger.info(f"Completed {func.__qualname__} in {time.perf_counter() - start:.2f} seconds")
        return result

    return wrapper


class PipelineLogger:
    """
    Context manager for one pipeline step.

    Metrics logged through the step are also kept in ``metrics`` so the caller
    can put them into its report or a tracking run once the step ends.
    """

    def __init__(self, step_name: str, logger: Optional[logging.Logger] = None):
        self.step_name = step_name
        self.logger = logger or get_logger("pipeline")
        self.metrics: Dict[str, Metric] = {}
        self.duration: Optional[float] = None
        self._start = None

    def __enter__(self):
        self._start = time.perf_counter()
        self.logger.info(f"=== Starting {self.step_name} ===")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self._start

        if exc_type is None:
            self.logger.info(f"=== Completed {self.step_name} in {self.duration:.2f} seconds ===")
        else:
            self.logger.error(f"=== Failed {self.step_name} after {self.duration:.2f} seconds: {exc_val} ===")

    def log_progress(self, message: str):
        self.logger.info(f"[{self.step_name}] {message}")

    def log_metric(self, name: str, value: Metric):
        self.metrics[name] = value
        self.logger.info(f"[{self.step_name}] Metric - {name}: {value}")


def configure_third_party_logging(level: int = logging.WARNING):
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(level)
