# featureguard/features/vectorizer.py
import logging
import warnings
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import joblib
import numpy as np
import pandas as pd
from sklearn.preprocessing import OneHotEncoder

from featureguard.config import VectorizerConfig
from featureguard.exceptions import SchemaError
from featureguard.features.feature_types import Feature, FeatureType, _new_uid
from featureguard.features.transformers import NumericBucketizer, UnaryLambdaTransformer, is_missing
from featureguard.lineage.descriptors import (
    ColumnDescriptor,
    ColumnDescriptorRegistry,
    DerivationKind,
    NULL_INDICATOR_VALUE,
    OTHER_INDICATOR_VALUE,
)
from featureguard.lineage.graph import LineageGraph

logger = logging.getLogger(__name__)

Stage = Union[UnaryLambdaTransformer, NumericBucketizer]

_NULL_SENTINEL = "\x00__null__"


@dataclass
class FeatureVector:
    """Numeric feature matrix together with its column lineage"""
    name: str
    data: pd.DataFrame
    registry: ColumnDescriptorRegistry
    lineage: LineageGraph

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Columns must match descriptors one-to-one and hold numeric values"""
        self.registry.validate_columns(self.data.columns)
        if list(self.data.columns) != self.registry.column_names:
            self.data = self.data[self.registry.column_names]

        non_numeric = [
            col for col in self.data.columns
            if not pd.api.types.is_numeric_dtype(self.data[col])
        ]
        if non_numeric:
            raise SchemaError(f"Feature vector '{self.name}' has non-numeric columns: {non_numeric[:5]}")

    @property
    def column_names(self) -> List[str]:
        return self.registry.column_names

    def select(self, columns: Iterable[str], name: Optional[str] = None) -> 'FeatureVector':
        columns = list(columns)
        return FeatureVector(
            name=name or self.name,
            data=self.data[columns].copy(),
            registry=self.registry.subset(columns),
            lineage=self.lineage,
        )


def order_features(features: Iterable[Feature]) -> List[Feature]:
    """Order features so that every parent precedes its children"""
    pending = list(OrderedDict((f.name, f) for f in features).values())
    ordered: List[Feature] = []
    placed = set()

    while pending:
        ready = [f for f in pending if all(p in placed for p in f.parents)]
        if not ready:
            raise SchemaError(f"Missing parent features for {[f.name for f in pending]}")
        for feature in ready:
            ordered.append(feature)
            placed.add(feature.name)
        pending = [f for f in pending if f.name not in placed]

    return ordered


def _finite(values: pd.Series, name: str) -> pd.Series:
    """Numeric values with +/-inf treated as missing"""
    infinite = np.isinf(values.to_numpy(dtype=float))
    if infinite.any():
        logger.warning(f"Treating {int(infinite.sum())} infinite values of '{name}' as missing")
        values = values.mask(infinite)
    return values


class FeatureVectorizer:
    """Turn raw and derived features into one numeric feature vector with column descriptors"""

    def __init__(self, config: Optional[VectorizerConfig] = None, vector_name: str = "features_vector"):
        self.config = config or VectorizerConfig()
        self.vector_name = vector_name
        self.uid = _new_uid("FeatureVectorizer")
        self.features: List[Feature] = []
        self.stages: List[Stage] = []
        self.encoders: Dict[str, Optional[OneHotEncoder]] = {}
        self.fill_values: Dict[str, float] = {}
        self.map_keys: Dict[str, List[str]] = {}
        self.multi_values: Dict[str, List[str]] = {}
        self.save_path: Optional[str] = None
        self._fitted = False

    # ------------------------------------------------------------------ fit

    def fit(self, data: pd.DataFrame, features: Sequence[Feature], stages: Sequence[Stage] = ()) -> 'FeatureVectorizer':
        """Learn fill values, category vocabularies and map keys"""
        self.stages = list(stages)
        data = self._apply_stages(data)

        self.features = []
        for feature in features:
            if feature.is_response:
                logger.info(f"Skipping response feature '{feature.name}' during vectorization")
                continue
            self.features.append(feature)

        for feature in self.features:
            if feature.ftype is FeatureType.VECTOR:
                self._producer_of(feature)
                continue

            series = self._column(data, feature)

            if feature.ftype.is_numeric:
                numeric = self._to_numeric(series, feature)
                mean = numeric.mean()
                self.fill_values[feature.name] = 0.0 if pd.isna(mean) else float(mean)

            elif feature.ftype is FeatureType.BINARY:
                self._to_binary(series, feature)

            elif feature.ftype.is_categorical:
                self.encoders[feature.name] = self._fit_encoder(self._to_text(series))

            elif feature.ftype is FeatureType.MULTI_PICKLIST:
                exploded = pd.Series(
                    [str(v) for row in series if not is_missing(row) for v in row],
                    dtype=object
                )
                self.multi_values[feature.name] = self._top_values(exploded)

            elif feature.ftype.is_map:
                maps = [row for row in series if isinstance(row, dict)]
                keys = sorted({str(k) for row in maps for k in row.keys()})
                self.map_keys[feature.name] = keys
                for key in keys:
                    values = pd.Series([self._map_value(row, key) for row in series], dtype=object)
                    slot = self._slot(feature.name, key)
                    if feature.ftype is FeatureType.PICKLIST_MAP:
                        self.encoders[slot] = self._fit_encoder(self._to_text(values))
                    else:
                        mean = _finite(pd.to_numeric(values, errors='coerce'), slot).mean()
                        self.fill_values[slot] = 0.0 if pd.isna(mean) else float(mean)

            else:
                raise SchemaError(f"Unsupported feature type {feature.ftype.value} for '{feature.name}'")

        self._fitted = True
        logger.info(f"Vectorizer fitted on {len(self.features)} features, {len(data)} rows")
        return self

    # ------------------------------------------------------------ transform

    def transform(self, data: pd.DataFrame) -> FeatureVector:
        """Build the feature vector and its descriptors"""
        if not self._fitted:
            raise ValueError("FeatureVectorizer must be fitted before transform")

        data = self._apply_stages(data)
        blocks: List[pd.DataFrame] = []
        registry = ColumnDescriptorRegistry()

        for feature in self.features:
            block, descriptors = self._vectorize_feature(data, feature)
            blocks.append(block)
            registry.extend(descriptors)

        matrix = pd.concat(blocks, axis=1) if blocks else pd.DataFrame(index=data.index)
        lineage = LineageGraph.build(self.lineage_features(), registry)

        logger.info(f"Vectorized {len(self.features)} features into {matrix.shape[1]} columns")
        return FeatureVector(name=self.vector_name, data=matrix, registry=registry, lineage=lineage)

    def fit_transform(self, data: pd.DataFrame, features: Sequence[Feature], stages: Sequence[Stage] = ()) -> FeatureVector:
        return self.fit(data, features, stages).transform(data)

    def lineage_features(self) -> List[Feature]:
        """Every feature that feeds the vector, ancestors included"""
        collected: List[Feature] = []
        for stage in self.stages:
            collected.extend(stage.input_features)
            collected.append(stage.get_output())
        collected.extend(self.features)
        return order_features(collected)

    def _vectorize_feature(self, data: pd.DataFrame, feature: Feature) -> Tuple[pd.DataFrame, List[ColumnDescriptor]]:
        if feature.ftype is FeatureType.VECTOR:
            return self._producer_of(feature).vectorize(data)

        series = self._column(data, feature)
        name = feature.name
        parents = (name,)

        if feature.ftype.is_numeric:
            values = self._to_numeric(series, feature)
            return self._numeric_block(name, values, self.fill_values[name], parents, name,
                                       DerivationKind.DIRECT_NUMERIC, DerivationKind.NULL_INDICATOR, name)

        if feature.ftype is FeatureType.BINARY:
            values = self._to_binary(series, feature)
            return self._numeric_block(name, values, 0.0, parents, name,
                                       DerivationKind.DIRECT_NUMERIC, DerivationKind.NULL_INDICATOR, name)

        if feature.ftype.is_categorical:
            return self._indicator_block(name, self._to_text(series), self.encoders[name], parents, name,
                                         DerivationKind.ONE_HOT_INDICATOR, DerivationKind.NULL_INDICATOR, name)

        if feature.ftype is FeatureType.MULTI_PICKLIST:
            return self._multi_value_block(name, series, self.multi_values[name], parents)

        if feature.ftype.is_map:
            blocks, descriptors = [], []
            for key in self.map_keys[name]:
                values = pd.Series([self._map_value(row, key) for row in series], index=series.index, dtype=object)
                slot = self._slot(name, key)
                prefix = f"{name}_{key}"
                if feature.ftype is FeatureType.PICKLIST_MAP:
                    block, descs = self._indicator_block(prefix, self._to_text(values), self.encoders[slot], parents, name,
                                                         DerivationKind.MAP_EXPANDED, DerivationKind.MAP_EXPANDED, prefix)
                else:
                    numeric = _finite(pd.to_numeric(values, errors='coerce'), prefix)
                    block, descs = self._numeric_block(prefix, numeric, self.fill_values[slot], parents, name,
                                                       DerivationKind.MAP_EXPANDED, DerivationKind.MAP_EXPANDED, prefix)
                blocks.append(block)
                descriptors.extend(descs)
            block = pd.concat(blocks, axis=1) if blocks else pd.DataFrame(index=data.index)
            return block, descriptors

        raise SchemaError(f"Unsupported feature type {feature.ftype.value} for '{name}'")

    # --------------------------------------------------------------- blocks

    def _numeric_block(self, prefix, values: pd.Series, fill_value: float, parents, producer,
                       value_kind: DerivationKind, null_kind: DerivationKind, group: str):
        is_null = values.isna()
        columns = {prefix: values.fillna(fill_value).astype(float).to_numpy()}
        descriptors = [ColumnDescriptor(
            column_name=prefix,
            parent_feature_names=parents,
            derivation_kind=value_kind,
            producer=producer,
        )]

        if self.config.TRACK_NULLS:
            null_name = f"{prefix}_{NULL_INDICATOR_VALUE}"
            columns[null_name] = is_null.astype(float).to_numpy()
            descriptors.append(ColumnDescriptor(
                column_name=null_name,
                parent_feature_names=parents,
                derivation_kind=null_kind,
                producer=producer,
                indicator_group=group,
                indicator_value=NULL_INDICATOR_VALUE,
            ))

        return pd.DataFrame(columns, index=values.index), descriptors

    def _indicator_block(self, prefix, values: pd.Series, encoder: Optional[OneHotEncoder], parents, producer,
                         value_kind: DerivationKind, null_kind: DerivationKind, group: str):
        is_null = values.isna().to_numpy()
        n_rows = len(values)

        if encoder is not None:
            encoder_input = values.fillna(_NULL_SENTINEL).astype(str).to_numpy().reshape(-1, 1)
            with warnings.catch_warnings():
                # unseen categories are expected and land in the OTHER column
                warnings.simplefilter("ignore", category=UserWarning)
                one_hot = np.asarray(encoder.transform(encoder_input), dtype=float)
            categories = [str(c) for c in encoder.categories_[0]]
        else:
            one_hot = np.zeros((n_rows, 0))
            categories = []

        columns: Dict[str, np.ndarray] = {}
        descriptors: List[ColumnDescriptor] = []

        for i, category in enumerate(categories):
            name = f"{prefix}_{category}"
            columns[name] = one_hot[:, i]
            descriptors.append(ColumnDescriptor(name, parents, value_kind, producer, group, category))

        other_name = f"{prefix}_{OTHER_INDICATOR_VALUE}"
        columns[other_name] = ((~is_null) & (one_hot.sum(axis=1) == 0)).astype(float)
        descriptors.append(ColumnDescriptor(other_name, parents, value_kind, producer, group, OTHER_INDICATOR_VALUE))

        if self.config.TRACK_NULLS:
            null_name = f"{prefix}_{NULL_INDICATOR_VALUE}"
            columns[null_name] = is_null.astype(float)
            descriptors.append(ColumnDescriptor(null_name, parents, null_kind, producer, group, NULL_INDICATOR_VALUE))

        return pd.DataFrame(columns, index=values.index), descriptors

    def _multi_value_block(self, name: str, series: pd.Series, vocabulary: List[str], parents):
        rows = [set() if is_missing(row) else {str(v) for v in row} for row in series]
        kind = DerivationKind.MULTI_VALUE_EXPANDED
        vocab = set(vocabulary)

        columns: Dict[str, np.ndarray] = {}
        descriptors: List[ColumnDescriptor] = []

        for value in vocabulary:
            column = f"{name}_{value}"
            columns[column] = np.array([value in row for row in rows], dtype=float)
            descriptors.append(ColumnDescriptor(column, parents, kind, name, name, value))

        other_name = f"{name}_{OTHER_INDICATOR_VALUE}"
        columns[other_name] = np.array([bool(row - vocab) for row in rows], dtype=float)
        descriptors.append(ColumnDescriptor(other_name, parents, kind, name, name, OTHER_INDICATOR_VALUE))

        if self.config.TRACK_NULLS:
            null_name = f"{name}_{NULL_INDICATOR_VALUE}"
            columns[null_name] = np.array([not row for row in rows], dtype=float)
            descriptors.append(ColumnDescriptor(null_name, parents, kind, name, name, NULL_INDICATOR_VALUE))

        return pd.DataFrame(columns, index=series.index), descriptors

    # -------------------------------------------------------------- helpers

    def _apply_stages(self, data: pd.DataFrame) -> pd.DataFrame:
        for stage in self.stages:
            if isinstance(stage, UnaryLambdaTransformer):
                data = stage.transform(data)
        return data

    def _producer_of(self, feature: Feature) -> NumericBucketizer:
        for stage in self.stages:
            if isinstance(stage, NumericBucketizer) and stage.get_output().name == feature.name:
                return stage
        raise SchemaError(f"No stage produces vector feature '{feature.name}'")

    @staticmethod
    def _column(data: pd.DataFrame, feature: Feature) -> pd.Series:
        if feature.name not in data.columns:
            raise SchemaError(f"Column '{feature.name}' not found in data")
        return data[feature.name]

    @staticmethod
    def _slot(name: str, key: str) -> str:
        return f"{name}::{key}"

    @staticmethod
    def _map_value(row: Any, key: str) -> Any:
        if not isinstance(row, dict):
            return None
        for k, v in row.items():
            if str(k) == key:
                return None if is_missing(v) else v
        return None

    @staticmethod
    def _to_numeric(series: pd.Series, feature: Feature) -> pd.Series:
        numeric = pd.to_numeric(series, errors='coerce')
        coerced = numeric.isna() & series.notna()
        if coerced.any():
            raise SchemaError(
                f"Feature '{feature.name}' declared {feature.ftype.value} but has "
                f"{int(coerced.sum())} non-numeric values"
            )
        return _finite(numeric.astype(float), feature.name)

    @staticmethod
    def _to_binary(series: pd.Series, feature: Feature) -> pd.Series:
        mapping = {True: 1.0, False: 0.0, 1: 1.0, 0: 0.0, 'true': 1.0, 'false': 0.0}

        def convert(value):
            if is_missing(value):
                return np.nan
            key = value.lower() if isinstance(value, str) else value
            if isinstance(key, (bool, np.bool_)):
                key = bool(key)
            try:
                return mapping[key]
            except (KeyError, TypeError):
                raise SchemaError(f"Feature '{feature.name}' has non-binary value {value!r}") from None

        return pd.Series([convert(v) for v in series], index=series.index, dtype=float)

    @staticmethod
    def _to_text(series: pd.Series) -> pd.Series:
        return pd.Series(
            [None if is_missing(v) else str(v) for v in series],
            index=series.index,
            dtype=object
        )

    def _top_values(self, values: pd.Series) -> List[str]:
        """Most frequent values with enough support, ties broken by value"""
        counts = values.dropna().value_counts()
        counts = counts[counts >= self.config.MIN_SUPPORT]
        ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [str(value) for value, _ in ordered[:self.config.TOP_K]]

    def _fit_encoder(self, values: pd.Series) -> Optional[OneHotEncoder]:
        categories = self._top_values(values)
        if not categories:
            return None
        encoder = OneHotEncoder(categories=[categories], handle_unknown='ignore', sparse_output=False)
        encoder.fit(np.array(categories, dtype=object).reshape(-1, 1))
        return encoder

    # ------------------------------------------------------------ persistence

    def set_save_path(self, path: str) -> 'FeatureVectorizer':
        self.save_path = path
        return self

    def _save_artifacts(self) -> Optional[str]:
        if self.save_path is None:
            return None
        artifact = Path(self.save_path) / f"{self.uid}.joblib"
        artifact.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump({
            'encoders': self.encoders,
            'fill_values': self.fill_values,
            'map_keys': self.map_keys,
            'multi_values': self.multi_values,
        }, artifact)
        logger.info(f"Saved vectorizer artifacts to {artifact}")
        return str(artifact)

    def load_artifacts(self, artifact_path: str) -> 'FeatureVectorizer':
        state = joblib.load(artifact_path)
        self.encoders = state['encoders']
        self.fill_values = state['fill_values']
        self.map_keys = state['map_keys']
        self.multi_values = state['multi_values']
        return self

    @property
    def input_features(self) -> List[Feature]:
        return list(self.features)

    def get_output(self) -> Feature:
        return Feature(name=self.vector_name, ftype=FeatureType.VECTOR, uid=f"{self.uid}_output")

    def to_json(self) -> Dict[str, Any]:
        return {
            'class': type(self).__name__,
            'uid': self.uid,
            'operationName': 'vectorize',
            'inputFeatures': [f.uid for f in self.input_features],
            'outputFeature': self.get_output().uid,
            'params': {
                'topK': self.config.TOP_K,
                'minSupport': self.config.MIN_SUPPORT,
                'trackNulls': self.config.TRACK_NULLS,
            },
            'artifactPath': self._save_artifacts(),
        }
