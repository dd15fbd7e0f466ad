# featureguard/exceptions.py
from typing import List, Optional


class FeatureGuardError(Exception):
    """Base class for all featureguard errors"""


class ConfigurationError(FeatureGuardError):
    """Raised before any computation when the checker configuration is invalid"""

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__("Invalid configuration: " + "; ".join(self.issues))


class SchemaError(FeatureGuardError):
    """Raised when the incoming feature vector does not match its descriptors"""


class SummaryDecodingError(FeatureGuardError):
    """Raised when summary metadata is malformed or misses a required field"""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        if field is not None:
            message = f"{message} (field '{field}')"
        super().__init__(message)
