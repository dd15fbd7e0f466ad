# featureguard/features/transformers.py
import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from featureguard.exceptions import SchemaError
from featureguard.features.feature_types import Feature, FeatureType, TransformKind, _new_uid
from featureguard.lineage.descriptors import (
    ColumnDescriptor,
    DerivationKind,
    NULL_INDICATOR_VALUE,
    OTHER_INDICATOR_VALUE,
)

logger = logging.getLogger(__name__)


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, set, frozenset, dict, np.ndarray)):
        return False
    return bool(pd.isna(value))


class UnaryLambdaTransformer:
    """Derive a new feature by applying an arbitrary function to one input feature"""

    def __init__(self, operation_name: str, transform_fn: Callable[[Any], Any], output_type: FeatureType):
        self.operation_name = operation_name
        self.transform_fn = transform_fn
        self.output_type = FeatureType(output_type)
        self.uid = _new_uid("UnaryLambdaTransformer")
        self.input_feature: Optional[Feature] = None
        self._output: Optional[Feature] = None

    def set_input(self, feature: Feature) -> 'UnaryLambdaTransformer':
        self.input_feature = feature
        self._output = None
        return self

    @property
    def input_features(self) -> List[Feature]:
        return [self.input_feature] if self.input_feature is not None else []

    def get_output(self) -> Feature:
        if self.input_feature is None:
            raise ValueError(f"Input feature not set for '{self.operation_name}'")
        if self._output is None:
            self._output = Feature(
                name=f"{self.input_feature.name}_{self.operation_name}",
                ftype=self.output_type,
                parents=(self.input_feature.name,),
                transform=TransformKind.UNARY_LAMBDA,
                operation_name=self.operation_name,
            )
        return self._output

    def transform(self, data: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of data with the derived column added"""
        output = self.get_output()
        source = self.input_feature.name
        if source not in data.columns:
            raise SchemaError(f"Input column '{source}' not found for '{self.operation_name}'")

        data_copy = data.copy()
        data_copy[output.name] = [
            self.transform_fn(None if is_missing(value) else value)
            for value in data_copy[source]
        ]
        return data_copy

    def to_json(self) -> Dict[str, Any]:
        return {
            'class': type(self).__name__,
            'uid': self.uid,
            'operationName': self.operation_name,
            'inputFeatures': [f.uid for f in self.input_features],
            'outputFeature': self.get_output().uid,
            'outputType': self.output_type.value,
        }


class NumericBucketizer:
    """Split a numeric feature into explicit buckets, emitted as indicator columns"""

    def __init__(
        self,
        split_points: Sequence[float],
        track_nulls: bool = True,
        track_invalid: bool = True,
        bucket_labels: Optional[Sequence[str]] = None
    ):
        splits = [float(s) for s in split_points]
        if len(splits) < 2:
            raise ValueError("NumericBucketizer needs at least two split points")
        if any(b <= a for a, b in zip(splits, splits[1:])):
            raise ValueError(f"Split points must be strictly increasing: {splits}")
        if bucket_labels is not None and len(bucket_labels) != len(splits) - 1:
            raise ValueError(
                f"Expected {len(splits) - 1} bucket labels, got {len(bucket_labels)}"
            )

        self.split_points = splits
        self.track_nulls = track_nulls
        self.track_invalid = track_invalid
        self.bucket_labels = list(bucket_labels) if bucket_labels is not None else [
            f"[{self._fmt(lo)}-{self._fmt(hi)})" for lo, hi in zip(splits, splits[1:])
        ]
        self.uid = _new_uid("NumericBucketizer")
        self.input_feature: Optional[Feature] = None
        self._output: Optional[Feature] = None

    @staticmethod
    def _fmt(value: float) -> str:
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return repr(value)

    def set_input(self, feature: Feature) -> 'NumericBucketizer':
        if not feature.ftype.is_numeric:
            raise SchemaError(f"NumericBucketizer expects a numeric feature, got {feature.ftype.value}")
        self.input_feature = feature
        self._output = None
        return self

    @property
    def input_features(self) -> List[Feature]:
        return [self.input_feature] if self.input_feature is not None else []

    def get_output(self) -> Feature:
        if self.input_feature is None:
            raise ValueError("Input feature not set for NumericBucketizer")
        if self._output is None:
            self._output = Feature(
                name=f"{self.input_feature.name}_bucketized",
                ftype=FeatureType.VECTOR,
                parents=(self.input_feature.name,),
                transform=TransformKind.BUCKETIZE,
                operation_name="bucketize",
            )
        return self._output

    def vectorize(self, data: pd.DataFrame) -> Tuple[pd.DataFrame, List[ColumnDescriptor]]:
        """Indicator columns for each bucket, plus OTHER and null columns when tracked"""
        output = self.get_output()
        source = self.input_feature.name
        if source not in data.columns:
            raise SchemaError(f"Input column '{source}' not found for bucketizer")

        values = pd.to_numeric(data[source], errors='coerce').to_numpy(dtype=float)
        is_null = np.isnan(values)
        splits = np.asarray(self.split_points)

        bucket_idx = np.searchsorted(splits, np.where(is_null, splits[0], values), side='right') - 1
        valid = (~is_null) & (bucket_idx >= 0) & (bucket_idx < len(splits) - 1)
        invalid = (~is_null) & (~valid)

        if invalid.any() and not self.track_invalid:
            raise ValueError(
                f"{int(invalid.sum())} values of '{source}' fall outside {self.split_points}"
            )

        columns: Dict[str, np.ndarray] = {}
        descriptors: List[ColumnDescriptor] = []
        parents = (source,)

        for i, label in enumerate(self.bucket_labels):
            name = f"{output.name}_{label}"
            columns[name] = (valid & (bucket_idx == i)).astype(float)
            descriptors.append(ColumnDescriptor(
                column_name=name,
                parent_feature_names=parents,
                derivation_kind=DerivationKind.BINNED_INDICATOR,
                producer=output.name,
                indicator_group=output.name,
                indicator_value=label,
            ))

        if self.track_invalid:
            name = f"{output.name}_{OTHER_INDICATOR_VALUE}"
            columns[name] = invalid.astype(float)
            descriptors.append(ColumnDescriptor(
                column_name=name,
                parent_feature_names=parents,
                derivation_kind=DerivationKind.BINNED_INDICATOR,
                producer=output.name,
                indicator_group=output.name,
                indicator_value=OTHER_INDICATOR_VALUE,
            ))

        if self.track_nulls:
            name = f"{output.name}_{NULL_INDICATOR_VALUE}"
            columns[name] = is_null.astype(float)
            descriptors.append(ColumnDescriptor(
                column_name=name,
                parent_feature_names=parents,
                derivation_kind=DerivationKind.NULL_INDICATOR,
                producer=output.name,
                indicator_group=output.name,
                indicator_value=NULL_INDICATOR_VALUE,
            ))

        logger.debug(f"Bucketized '{source}' into {len(columns)} columns")
        return pd.DataFrame(columns, index=data.index), descriptors

    def to_json(self) -> Dict[str, Any]:
        return {
            'class': type(self).__name__,
            'uid': self.uid,
            'operationName': 'bucketize',
            'inputFeatures': [f.uid for f in self.input_features],
            'outputFeature': self.get_output().uid,
            'splitPoints': [self._fmt(s) if math.isinf(s) else s for s in self.split_points],
            'trackNulls': self.track_nulls,
            'trackInvalid': self.track_invalid,
            'bucketLabels': self.bucket_labels,
        }
