# featureguard/config.py
import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
import json
import logging

from featureguard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class PathConfig:
    """Configuration for project paths"""
    PROJECT_ROOT: Path
    DATA_DIR: Path
    MODELS_DIR: Path
    LOGS_DIR: Path


@dataclass
class MLFlowConfig:
    """Configuration for MLflow tracking"""
    ENABLED: bool
    TRACKING_URI: str
    EXPERIMENT_NAME: str


@dataclass
class DataValidationConfig:
    """Configuration for data validation"""
    MAX_FILE_SIZE_MB: int
    MIN_ROWS: int
    MAX_LABEL_MISSING_PERCENTAGE: float
    SUPPORTED_FILE_FORMATS: List[str]


@dataclass
class VectorizerConfig:
    """Configuration for feature vectorization"""
    TOP_K: int = 20
    MIN_SUPPORT: int = 10
    TRACK_NULLS: bool = True
    MAX_PICKLIST_CARDINALITY: int = 100


@dataclass
class SanityCheckerConfig:
    """Configuration for leakage detection and feature pruning"""
    CHECK_SAMPLE: float = 1.0
    SAMPLE_SEED: int = 42
    SAMPLE_LOWER_LIMIT: int = 1000
    SAMPLE_UPPER_LIMIT: int = 1000000
    REMOVE_BAD_FEATURES: bool = False
    MIN_VARIANCE: float = 1e-5
    CORRELATION_CUTOFF: float = 0.95
    MIN_CORRELATION: float = 0.0
    CRAMERS_V_CUTOFF: float = 0.95
    CATEGORICAL_LABEL: Optional[bool] = None
    MAX_LABEL_CLASSES: int = 20
    GROUP_COMPLETION_FRACTION: float = 0.5
    PROTECTED_FEATURES: List[str] = field(default_factory=list)
    NUM_PARTITIONS: int = 4
    PARALLEL_PROCESSING: bool = False

    def validate(self) -> List[str]:
        """Return a list of configuration issues (empty when valid)"""
        issues = []

        if not 0.0 < self.CHECK_SAMPLE <= 1.0:
            issues.append(f"CHECK_SAMPLE must be in (0, 1]: {self.CHECK_SAMPLE}")

        if self.SAMPLE_LOWER_LIMIT < 1:
            issues.append(f"SAMPLE_LOWER_LIMIT must be >= 1: {self.SAMPLE_LOWER_LIMIT}")

        if self.SAMPLE_UPPER_LIMIT < self.SAMPLE_LOWER_LIMIT:
            issues.append(
                f"SAMPLE_UPPER_LIMIT ({self.SAMPLE_UPPER_LIMIT}) is below "
                f"SAMPLE_LOWER_LIMIT ({self.SAMPLE_LOWER_LIMIT})"
            )

        if self.MIN_VARIANCE < 0:
            issues.append(f"MIN_VARIANCE must be >= 0: {self.MIN_VARIANCE}")

        for name in ('CORRELATION_CUTOFF', 'MIN_CORRELATION', 'CRAMERS_V_CUTOFF'):
            value = getattr(self, name)
            if value < 0 or value > 1:
                issues.append(f"{name} must be in [0, 1]: {value}")

        if self.MIN_CORRELATION >= self.CORRELATION_CUTOFF:
            issues.append(
                f"MIN_CORRELATION ({self.MIN_CORRELATION}) must be below "
                f"CORRELATION_CUTOFF ({self.CORRELATION_CUTOFF})"
            )

        if self.MAX_LABEL_CLASSES < 2:
            issues.append(f"MAX_LABEL_CLASSES must be >= 2: {self.MAX_LABEL_CLASSES}")

        if not 0.0 <= self.GROUP_COMPLETION_FRACTION <= 1.0:
            issues.append(f"GROUP_COMPLETION_FRACTION must be in [0, 1]: {self.GROUP_COMPLETION_FRACTION}")

        if self.NUM_PARTITIONS < 1:
            issues.append(f"NUM_PARTITIONS must be >= 1: {self.NUM_PARTITIONS}")

        return issues

    def ensure_valid(self) -> 'SanityCheckerConfig':
        """Raise ConfigurationError if any issue is found"""
        issues = self.validate()
        if issues:
            raise ConfigurationError(issues)
        return self

    def to_params(self) -> Dict[str, Any]:
        """Parameters as written to the model document and tracking runs"""
        return {
            'checkSample': self.CHECK_SAMPLE,
            'sampleSeed': self.SAMPLE_SEED,
            'sampleLowerLimit': self.SAMPLE_LOWER_LIMIT,
            'sampleUpperLimit': self.SAMPLE_UPPER_LIMIT,
            'removeBadFeatures': self.REMOVE_BAD_FEATURES,
            'minVariance': self.MIN_VARIANCE,
            'correlationCutoff': self.CORRELATION_CUTOFF,
            'minCorrelation': self.MIN_CORRELATION,
            'cramersVCutoff': self.CRAMERS_V_CUTOFF,
            'categoricalLabel': self.CATEGORICAL_LABEL,
            'groupCompletionFraction': self.GROUP_COMPLETION_FRACTION,
            'protectedFeatures': list(self.PROTECTED_FEATURES),
        }


class Config:
    """Central configuration manager for the feature pipeline"""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration

        Args:
            config_file: Optional path to JSON config file to override defaults
        """
        self._load_default_config()

        if config_file and os.path.exists(config_file):
            self._load_config_file(config_file)

        self._load_environment_variables()

    def _load_default_config(self):
        """Load default configuration values"""

        project_root = Path(__file__).parent.parent
        self.paths = PathConfig(
            PROJECT_ROOT=project_root,
            DATA_DIR=project_root / "data",
            MODELS_DIR=project_root / "models",
            LOGS_DIR=project_root / "logs"
        )

        self.mlflow = MLFlowConfig(
            ENABLED=False,
            TRACKING_URI="sqlite:///mlflow.db",
            EXPERIMENT_NAME="featureguard_sanity_checks"
        )

        self.data_validation = DataValidationConfig(
            MAX_FILE_SIZE_MB=500,
            MIN_ROWS=100,
            MAX_LABEL_MISSING_PERCENTAGE=5.0,
            SUPPORTED_FILE_FORMATS=['.csv', '.json', '.parquet']
        )

        self.vectorizer = VectorizerConfig()
        self.sanity_checker = SanityCheckerConfig()

        # Additional settings
        self.logging_level = "INFO"
        self.debug_mode = False

    def _load_config_file(self, config_file: str):
        """Load configuration from JSON file"""
        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load config file {config_file}: {e}")
            return

        # Update configurations with values from file
        for section, values in config_data.items():
            if not hasattr(self, section):
                logger.warning(f"Unknown config section '{section}' in {config_file}")
                continue
            config_obj = getattr(self, section)
            if not isinstance(values, dict):
                setattr(self, section, values)
                continue
            for key, value in values.items():
                if section == 'paths':
                    value = Path(value)
                if hasattr(config_obj, key):
                    setattr(config_obj, key, value)
                else:
                    logger.warning(f"Unknown config key '{section}.{key}' in {config_file}")

    def _load_environment_variables(self):
        """Load configuration from environment variables"""

        # MLflow settings
        if os.getenv("MLFLOW_TRACKING_URI"):
            self.mlflow.TRACKING_URI = os.getenv("MLFLOW_TRACKING_URI")
            self.mlflow.ENABLED = True

        if os.getenv("MLFLOW_EXPERIMENT_NAME"):
            self.mlflow.EXPERIMENT_NAME = os.getenv("MLFLOW_EXPERIMENT_NAME")

        # Sanity checker settings
        if os.getenv("CHECK_SAMPLE"):
            self.sanity_checker.CHECK_SAMPLE = float(os.getenv("CHECK_SAMPLE"))

        if os.getenv("REMOVE_BAD_FEATURES"):
            self.sanity_checker.REMOVE_BAD_FEATURES = os.getenv("REMOVE_BAD_FEATURES").lower() == 'true'

        if os.getenv("CORRELATION_CUTOFF"):
            self.sanity_checker.CORRELATION_CUTOFF = float(os.getenv("CORRELATION_CUTOFF"))

        if os.getenv("CRAMERS_V_CUTOFF"):
            self.sanity_checker.CRAMERS_V_CUTOFF = float(os.getenv("CRAMERS_V_CUTOFF"))

        # General settings
        if os.getenv("LOG_LEVEL"):
            self.logging_level = os.getenv("LOG_LEVEL")

        if os.getenv("DEBUG_MODE"):
            self.debug_mode = os.getenv("DEBUG_MODE").lower() == 'true'

    def create_directories(self):
        """Create necessary directories if they don't exist"""
        for directory in [self.paths.DATA_DIR, self.paths.MODELS_DIR, self.paths.LOGS_DIR]:
            directory.mkdir(parents=True, exist_ok=True)

    def save_config(self, config_file: str):
        """Save current configuration to JSON file"""
        config_dict = {}

        for section in ('paths', 'mlflow', 'data_validation', 'vectorizer', 'sanity_checker'):
            values = asdict(getattr(self, section))
            config_dict[section] = {
                key: str(value) if isinstance(value, Path) else value
                for key, value in values.items()
            }

        config_dict['logging_level'] = self.logging_level
        config_dict['debug_mode'] = self.debug_mode

        with open(config_file, 'w') as f:
            json.dump(config_dict, f, indent=2)

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = list(self.sanity_checker.validate())

        if self.vectorizer.TOP_K < 1:
            issues.append(f"TOP_K must be >= 1: {self.vectorizer.TOP_K}")

        if self.vectorizer.MIN_SUPPORT < 0:
            issues.append(f"MIN_SUPPORT must be >= 0: {self.vectorizer.MIN_SUPPORT}")

        if self.data_validation.MAX_FILE_SIZE_MB <= 0:
            issues.append(f"Invalid max file size: {self.data_validation.MAX_FILE_SIZE_MB}")

        if self.data_validation.MIN_ROWS <= 0:
            issues.append(f"Invalid min rows: {self.data_validation.MIN_ROWS}")

        return issues

    def __str__(self) -> str:
        """String representation of configuration"""
        return f"Config(project_root={self.paths.PROJECT_ROOT}, debug={self.debug_mode})"


# Global configuration instance
_config = None


def get_config(config_file: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton pattern)"""
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reload_config(config_file: Optional[str] = None) -> Config:
    """Reload configuration (useful for testing)"""
    global _config
    _config = Config(config_file)
    return _config
