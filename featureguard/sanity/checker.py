# featureguard/sanity/checker.py
import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from featureguard.config import SanityCheckerConfig
from featureguard.exceptions import SchemaError, SummaryDecodingError
from featureguard.features.feature_types import Feature, FeatureType, _new_uid
from featureguard.features.vectorizer import FeatureVector
from featureguard.sanity.association import AssociationEngine, CategoricalStats
from featureguard.sanity.decision import LeakageDecisionEngine
from featureguard.sanity.propagation import LineagePropagator, PropagationResult
from featureguard.sanity.statistics import StatisticsResult, aggregate_statistics
from featureguard.sanity.summary import (
    SUMMARY_METADATA_KEY,
    CorrelationStats,
    FeatureStatistics,
    SanityCheckerSummary,
)
from featureguard.utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)


class SanityChecker:
    """Detect leaking and uninformative columns of a feature vector"""

    def __init__(self, config: Optional[SanityCheckerConfig] = None):
        self.config = (config or SanityCheckerConfig()).ensure_valid()
        self.uid = _new_uid("SanityChecker")

    def checked_columns(self, vector: FeatureVector, label_name: str) -> List[str]:
        """Vector columns subject to the check; columns derived from the label are excluded"""
        excluded = []
        checked = []
        for descriptor in vector.registry:
            if label_name in descriptor.parent_feature_names or descriptor.producer == label_name:
                excluded.append(descriptor.column_name)
            else:
                checked.append(descriptor.column_name)
        if excluded:
            logger.warning(f"Excluding {len(excluded)} label-derived columns from the check: {excluded[:5]}")
        return checked

    @log_execution_time
    def fit(self, vector: FeatureVector, label: pd.Series, label_feature: Optional[Feature] = None) -> 'SanityCheckerModel':
        """Compute statistics, flag columns and propagate drops over the lineage"""
        vector.validate()
        if label_feature is None:
            label_feature = Feature.raw(str(label.name), FeatureType.REAL, is_response=True)
        if not label.index.equals(vector.data.index):
            raise SchemaError(f"Label '{label.name}' is not aligned with feature vector '{vector.name}'")

        checked = self.checked_columns(vector, label_feature.name)
        logger.info(f"Checking {len(checked)} columns of '{vector.name}' against label '{label.name}'")

        stats = aggregate_statistics(vector.data[checked], label, self.config)
        categorical = AssociationEngine(vector.registry, self.config.MIN_VARIANCE).compute(stats)
        flags = LeakageDecisionEngine(self.config).decide(stats, categorical)
        result = LineagePropagator(vector.registry, vector.lineage, self.config).propagate(flags, checked)

        summary = build_summary(checked, stats, categorical, result)
        for column in result.dropped:
            logger.debug(f"Dropping '{column}': {'; '.join(summary.drop_reasons[column])}")
        logger.info(f"Sanity check flagged {len(result.dropped)} of {len(checked)} columns")

        return SanityCheckerModel(
            uid=self.uid,
            summary=summary,
            config=self.config,
            input_vector=vector.name,
            label_feature=label_feature,
            input_features=vector.lineage.features,
        )

    def fit_transform(self, vector: FeatureVector, label: pd.Series,
                      label_feature: Optional[Feature] = None) -> FeatureVector:
        return self.fit(vector, label, label_feature).transform(vector)


def build_summary(
    checked: List[str],
    stats: StatisticsResult,
    categorical: CategoricalStats,
    result: PropagationResult
) -> SanityCheckerSummary:
    columns = [stats[c] for c in checked]
    if stats.label.is_categorical:
        correlation = CorrelationStats()
    else:
        correlation = CorrelationStats(
            feature_names=tuple(checked),
            values=tuple(s.correlation_with_label for s in columns),
        )

    return SanityCheckerSummary(
        names=tuple(checked),
        dropped=tuple(result.dropped),
        categorical_stats=categorical,
        correlation_stats=correlation,
        feature_statistics=FeatureStatistics(
            count=stats.row_count,
            sample_fraction=stats.sample_fraction,
            means=tuple(s.mean for s in columns),
            variances=tuple(s.variance for s in columns),
            mins=tuple(s.min for s in columns),
            maxs=tuple(s.max for s in columns),
            num_nulls=tuple(s.num_nulls for s in columns),
        ),
        drop_reasons={c: tuple(f.describe() for f in flags) for c, flags in result.reasons.items()},
        label_context=stats.label,
    )


class SanityCheckerModel:
    """Fitted sanity check: the summary plus the column pruning it implies"""

    def __init__(
        self,
        uid: str,
        summary: SanityCheckerSummary,
        config: SanityCheckerConfig,
        input_vector: str,
        label_feature: Feature,
        input_features: Optional[List[Feature]] = None
    ):
        self.uid = uid
        self.summary = summary
        self.config = config
        self.input_vector = input_vector
        self.label_feature = label_feature
        self.input_features = list(input_features or [])

    @property
    def dropped(self) -> List[str]:
        return list(self.summary.dropped)

    def transform(self, vector: FeatureVector) -> FeatureVector:
        """Prune dropped columns when REMOVE_BAD_FEATURES is set and attach the summary"""
        name = f"{vector.name}_checked"
        if self.config.REMOVE_BAD_FEATURES:
            dropped = set(self.summary.dropped)
            keep = [c for c in vector.column_names if c not in dropped]
            logger.info(f"Removing {len(vector.column_names) - len(keep)} columns from '{vector.name}'")
        else:
            keep = vector.column_names
            logger.info(f"removeBadFeatures is off; reporting {len(self.summary.dropped)} columns without removal")

        output = vector.select(keep, name=name)
        output.data.attrs[SUMMARY_METADATA_KEY] = self.summary.to_metadata()
        return output

    def get_output(self) -> Feature:
        return Feature(name=f"{self.input_vector}_checked", ftype=FeatureType.VECTOR, uid=f"{self.uid}_output")

    def to_json(self) -> Dict[str, Any]:
        return {
            'class': 'SanityCheckerModel',
            'uid': self.uid,
            'operationName': 'sanityCheck',
            'inputFeatures': [self.label_feature.uid],
            'inputVector': self.input_vector,
            'outputFeature': self.get_output().uid,
            'params': self.config.to_params(),
            SUMMARY_METADATA_KEY: self.summary.to_metadata(),
        }


def summary_from_frame(data: pd.DataFrame) -> SanityCheckerSummary:
    """Recover the summary attached to a checked feature frame"""
    if SUMMARY_METADATA_KEY not in data.attrs:
        raise SummaryDecodingError("Frame carries no sanity checker summary", field=SUMMARY_METADATA_KEY)
    return SanityCheckerSummary.from_metadata(data.attrs[SUMMARY_METADATA_KEY])
