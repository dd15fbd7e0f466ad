# featureguard/features/feature_types.py
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Any, Optional, Tuple
import uuid


class FeatureType(str, Enum):
    """Value types a feature column can hold"""
    REAL = "Real"
    CURRENCY = "Currency"
    PERCENT = "Percent"
    INTEGRAL = "Integral"
    BINARY = "Binary"
    PICKLIST = "PickList"
    CITY = "City"
    COUNTRY = "Country"
    TEXT = "Text"
    MULTI_PICKLIST = "MultiPickList"
    PICKLIST_MAP = "PickListMap"
    REAL_MAP = "RealMap"
    INTEGRAL_MAP = "IntegralMap"
    VECTOR = "OPVector"

    @property
    def is_numeric(self) -> bool:
        return self in (FeatureType.REAL, FeatureType.CURRENCY, FeatureType.PERCENT, FeatureType.INTEGRAL)

    @property
    def is_categorical(self) -> bool:
        return self in (FeatureType.PICKLIST, FeatureType.CITY, FeatureType.COUNTRY, FeatureType.TEXT)

    @property
    def is_map(self) -> bool:
        return self in (FeatureType.PICKLIST_MAP, FeatureType.REAL_MAP, FeatureType.INTEGRAL_MAP)


class TransformKind(str, Enum):
    """How a derived feature was produced from its parents"""
    BUCKETIZE = "bucketize"
    UNARY_LAMBDA = "unaryLambda"

    @property
    def is_structural(self) -> bool:
        """Recognized structural derivations carry a 1:1 lineage edge"""
        return self is TransformKind.BUCKETIZE


def _new_uid(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Feature:
    """A named, typed column definition; raw when it has no parents"""
    name: str
    ftype: FeatureType
    is_response: bool = False
    parents: Tuple[str, ...] = ()
    transform: Optional[TransformKind] = None
    operation_name: Optional[str] = None
    uid: str = field(default="", compare=False)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Feature name must not be empty")
        if bool(self.parents) != (self.transform is not None):
            raise ValueError(f"Feature '{self.name}' must declare a transform exactly when it has parents")
        if not self.uid:
            object.__setattr__(self, 'uid', _new_uid(self.ftype.value))

    @classmethod
    def raw(cls, name: str, ftype: FeatureType, is_response: bool = False) -> 'Feature':
        return cls(name=name, ftype=FeatureType(ftype), is_response=is_response)

    @property
    def is_raw(self) -> bool:
        return not self.parents

    def as_response(self) -> 'Feature':
        """Copy of this feature flagged as the label"""
        return replace(self, is_response=True)

    def to_json(self) -> Dict[str, Any]:
        return {
            'uid': self.uid,
            'name': self.name,
            'typeName': self.ftype.value,
            'isResponse': self.is_response,
            'isRaw': self.is_raw,
            'parents': list(self.parents),
            'transform': self.transform.value if self.transform else None,
            'operationName': self.operation_name,
        }
