# featureguard/agents/feature_agent.py
import pandas as pd
from typing import Dict, List, Optional
import logging

from featureguard.config import VectorizerConfig, get_config
from featureguard.features.feature_types import Feature, FeatureType
from featureguard.features.transformers import is_missing
from featureguard.features.vectorizer import FeatureVectorizer

logger = logging.getLogger(__name__)


class FeatureEngineeringAgent:
    """Agent responsible for typing raw columns and building the feature vector"""

    def __init__(self, config: Optional[VectorizerConfig] = None):
        self.config = config or get_config().vectorizer
        self.vectorizer: Optional[FeatureVectorizer] = None

    async def engineer_features(self, state: dict) -> dict:
        """Infer feature types and vectorize the raw data"""
        logger.info("Starting feature engineering")

        try:
            data = state['raw_data']
            target_column = state['target_column']

            if target_column not in data.columns:
                raise ValueError(f"Target column '{target_column}' not found in data")

            features = self.infer_features(data, target_column, state.get('feature_types'))
            label_feature = next(f for f in features if f.is_response)
            predictors = [f for f in features if not f.is_response]

            self.vectorizer = FeatureVectorizer(self.config)
            vector = self.vectorizer.fit_transform(data, predictors, state.get('stages', []))

            feature_report = {
                'raw_features': {f.name: f.ftype.value for f in predictors},
                'label_type': label_feature.ftype.value,
                'vector_columns': vector.data.shape[1],
                'indicator_groups': len(vector.registry.groups()),
            }

            state.update({
                'features': predictors,
                'label_feature': label_feature,
                'label': data[target_column],
                'feature_vector': vector,
                'vectorizer': self.vectorizer,
                'feature_report': feature_report,
                'current_step': 'feature_engineering',
                'next_action': 'sanity_check'
            })

            state['execution_log'].append(
                f"Feature engineering completed: {len(predictors)} features -> {vector.data.shape[1]} columns"
            )

            return state

        except Exception as e:
            logger.error(f"Feature engineering failed: {str(e)}")
            state['errors'].append(f"Feature engineering error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def infer_features(
        self,
        data: pd.DataFrame,
        target_column: str,
        overrides: Optional[Dict[str, str]] = None
    ) -> List[Feature]:
        """Raw feature definitions for every column; the target becomes the response"""
        overrides = overrides or {}
        features = []

        for col in data.columns:
            if col in overrides:
                ftype = FeatureType(overrides[col])
            else:
                ftype = self._infer_type(data[col])

            if ftype is None:
                logger.warning(f"Skipping column '{col}' with unsupported dtype {data[col].dtype}")
                continue

            features.append(Feature.raw(col, ftype, is_response=(col == target_column)))

        types = {f.name: f.ftype.value for f in features}
        logger.info(f"Inferred {len(features)} raw features: {types}")
        return features

    def _infer_type(self, series: pd.Series) -> Optional[FeatureType]:
        """Map a pandas column onto a feature type"""
        if pd.api.types.is_bool_dtype(series):
            return FeatureType.BINARY
        if pd.api.types.is_integer_dtype(series):
            return FeatureType.INTEGRAL
        if pd.api.types.is_float_dtype(series):
            return FeatureType.REAL
        if isinstance(series.dtype, pd.CategoricalDtype):
            return FeatureType.PICKLIST
        if pd.api.types.is_datetime64_any_dtype(series):
            return None

        values = [v for v in series if not is_missing(v)]
        if not values:
            return FeatureType.PICKLIST

        if all(isinstance(v, (list, tuple, set, frozenset)) for v in values):
            return FeatureType.MULTI_PICKLIST

        if all(isinstance(v, dict) for v in values):
            map_values = [x for v in values for x in v.values() if not is_missing(x)]
            if map_values and all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in map_values):
                if all(float(x).is_integer() for x in map_values):
                    return FeatureType.INTEGRAL_MAP
                return FeatureType.REAL_MAP
            return FeatureType.PICKLIST_MAP

        if all(isinstance(v, bool) for v in values):
            return FeatureType.BINARY

        if series.nunique() <= self.config.MAX_PICKLIST_CARDINALITY:
            return FeatureType.PICKLIST
        return FeatureType.TEXT
