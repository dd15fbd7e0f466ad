# featureguard/lineage/descriptors.py
"""
Column descriptors for engineered feature vectors.

Every scalar column inside a feature vector carries one descriptor that names
the raw feature(s) it derives from, the kind of derivation that produced it and,
for mutually exclusive expansions, the indicator group it belongs to.
"""
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Iterable, Iterator, List, Optional, Tuple

from featureguard.exceptions import SchemaError

NULL_INDICATOR_VALUE = "NullIndicatorValue"
OTHER_INDICATOR_VALUE = "OTHER"


class DerivationKind(str, Enum):
    """How a vector column was derived from its parent feature"""
    DIRECT_NUMERIC = "direct-numeric"
    ONE_HOT_INDICATOR = "one-hot-indicator"
    NULL_INDICATOR = "null-indicator"
    BINNED_INDICATOR = "binned-indicator"
    MAP_EXPANDED = "map-expanded"
    MULTI_VALUE_EXPANDED = "multi-value-expanded"

    @property
    def is_categorical_partition(self) -> bool:
        """Columns of these kinds partition one parent into exclusive categories"""
        return self in (
            DerivationKind.ONE_HOT_INDICATOR,
            DerivationKind.NULL_INDICATOR,
            DerivationKind.BINNED_INDICATOR,
        )


@dataclass(frozen=True)
class ColumnDescriptor:
    """Lineage metadata for a single feature vector column"""
    column_name: str
    parent_feature_names: Tuple[str, ...]
    derivation_kind: DerivationKind
    producer: str
    indicator_group: Optional[str] = None
    indicator_value: Optional[str] = None

    def __post_init__(self):
        if not self.parent_feature_names:
            raise SchemaError(f"Column '{self.column_name}' has no parent features")
        if self.indicator_value is not None and self.indicator_group is None:
            raise SchemaError(f"Column '{self.column_name}' has an indicator value but no indicator group")

    @property
    def eligible_for_association(self) -> bool:
        """Structural eligibility for Cramer's V (independent of the data)"""
        return self.derivation_kind.is_categorical_partition and self.indicator_group is not None

    def to_json(self) -> Dict[str, Any]:
        return {
            'columnName': self.column_name,
            'parentFeatureNames': list(self.parent_feature_names),
            'derivationKind': self.derivation_kind.value,
            'producer': self.producer,
            'indicatorGroup': self.indicator_group,
            'indicatorValue': self.indicator_value,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'ColumnDescriptor':
        return cls(
            column_name=data['columnName'],
            parent_feature_names=tuple(data['parentFeatureNames']),
            derivation_kind=DerivationKind(data['derivationKind']),
            producer=data['producer'],
            indicator_group=data.get('indicatorGroup'),
            indicator_value=data.get('indicatorValue'),
        )


class ColumnDescriptorRegistry:
    """Ordered, name-unique collection of column descriptors for one feature vector"""

    def __init__(self, descriptors: Iterable[ColumnDescriptor] = ()):
        self._descriptors: "OrderedDict[str, ColumnDescriptor]" = OrderedDict()
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ColumnDescriptor):
        if descriptor.column_name in self._descriptors:
            raise SchemaError(f"Duplicate descriptor for column '{descriptor.column_name}'")
        self._descriptors[descriptor.column_name] = descriptor

    def extend(self, descriptors: Iterable[ColumnDescriptor]):
        for descriptor in descriptors:
            self.register(descriptor)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[ColumnDescriptor]:
        return iter(self._descriptors.values())

    def __contains__(self, column_name: str) -> bool:
        return column_name in self._descriptors

    def __getitem__(self, column_name: str) -> ColumnDescriptor:
        try:
            return self._descriptors[column_name]
        except KeyError:
            raise SchemaError(f"No descriptor registered for column '{column_name}'") from None

    @property
    def column_names(self) -> List[str]:
        return list(self._descriptors.keys())

    def groups(self) -> Dict[str, List[str]]:
        """Indicator group -> member column names, in vector order"""
        groups: Dict[str, List[str]] = OrderedDict()
        for descriptor in self:
            if descriptor.indicator_group is not None:
                groups.setdefault(descriptor.indicator_group, []).append(descriptor.column_name)
        return groups

    def columns_with_parent(self, feature_name: str) -> List[str]:
        return [d.column_name for d in self if feature_name in d.parent_feature_names]

    def validate_columns(self, columns: Iterable[str]):
        """Every column has exactly one descriptor and vice versa"""
        columns = list(columns)
        missing = [c for c in columns if c not in self._descriptors]
        extra = [c for c in self._descriptors if c not in set(columns)]
        if missing or extra:
            raise SchemaError(
                f"Feature vector columns do not match descriptors: "
                f"undescribed={missing[:5]}, absent={extra[:5]}"
            )
        if len(set(columns)) != len(columns):
            raise SchemaError("Feature vector contains duplicate column names")

    def subset(self, column_names: Iterable[str]) -> 'ColumnDescriptorRegistry':
        return ColumnDescriptorRegistry(self[name] for name in column_names)

    def to_json(self) -> List[Dict[str, Any]]:
        return [d.to_json() for d in self]

    @classmethod
    def from_json(cls, data: List[Dict[str, Any]]) -> 'ColumnDescriptorRegistry':
        return cls(ColumnDescriptor.from_json(item) for item in data)
