# featureguard/sanity/statistics.py
"""
Column statistics for the sanity checker, aggregated in one pass per row set.

Rows are split into partitions; every partition produces a PartialAggregate
(counts, means and second moments of each column, co-moments with the label,
and column x label-class contingency sums). Partials merge associatively with
the pairwise update of Chan et al., so the reduction order only affects the
result at the level of floating point rounding.
"""
import logging
from dataclasses import dataclass
from functools import reduce
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from featureguard.config import SanityCheckerConfig
from featureguard.exceptions import SchemaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LabelContext:
    """How the label is treated for the duration of one check"""
    name: str
    is_categorical: bool
    classes: Tuple[Any, ...] = ()

    @classmethod
    def infer(cls, label: pd.Series, override: Optional[bool] = None, max_classes: int = 20) -> 'LabelContext':
        values = label.dropna()
        if override is not None:
            is_categorical = bool(override)
        else:
            is_categorical = (
                values.dtype == 'object'
                or isinstance(values.dtype, pd.CategoricalDtype)
                or values.nunique() < max_classes
            )

        if not is_categorical:
            if not pd.api.types.is_numeric_dtype(values):
                raise SchemaError(f"Label '{label.name}' is not numeric and cannot be treated as continuous")
            return cls(name=str(label.name), is_categorical=False)

        classes = tuple(sorted(pd.unique(values).tolist()))
        return cls(name=str(label.name), is_categorical=True, classes=classes)

    def encode(self, label: pd.Series) -> np.ndarray:
        """Label as floats: class codes when categorical, raw values otherwise"""
        if self.is_categorical:
            codes = {value: i for i, value in enumerate(self.classes)}
            return np.array([codes[v] for v in label], dtype=float)
        return pd.to_numeric(label).to_numpy(dtype=float)

    def to_json(self) -> Dict[str, Any]:
        return {
            'labelName': self.name,
            'isCategorical': self.is_categorical,
            'classes': list(self.classes),
        }


@dataclass(frozen=True)
class ColumnStatistics:
    """Immutable statistics of one checked column"""
    name: str
    count: int
    mean: float
    variance: float
    min: Optional[float]
    max: Optional[float]
    num_nulls: int
    correlation_with_label: Optional[float] = None
    contingency: Optional[Tuple[float, ...]] = None


@dataclass(frozen=True)
class StatisticsResult:
    columns: Dict[str, ColumnStatistics]
    label: LabelContext
    row_count: int
    sample_fraction: float
    class_counts: Tuple[float, ...] = ()

    def __getitem__(self, column: str) -> ColumnStatistics:
        return self.columns[column]


def _safe_div(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    num = np.asarray(num, dtype=float)
    den = np.asarray(den, dtype=float)
    out = np.zeros(np.broadcast(num, den).shape)
    np.divide(num, den, out=out, where=den != 0)
    return out


class PartialAggregate:
    """Mergeable per-partition accumulator over all checked columns"""

    def __init__(self, n_columns: int, n_classes: int = 0):
        self.rows = 0
        self.n = np.zeros(n_columns)
        self.mean = np.zeros(n_columns)
        self.m2 = np.zeros(n_columns)
        self.y_mean = np.zeros(n_columns)
        self.y_m2 = np.zeros(n_columns)
        self.c_xy = np.zeros(n_columns)
        self.min = np.full(n_columns, np.inf)
        self.max = np.full(n_columns, -np.inf)
        self.nulls = np.zeros(n_columns)
        self.contingency = np.zeros((n_columns, n_classes))
        self.class_counts = np.zeros(n_classes)

    @classmethod
    def from_block(cls, X: np.ndarray, y: np.ndarray, n_classes: int = 0) -> 'PartialAggregate':
        agg = cls(X.shape[1], n_classes)
        if X.shape[0] == 0:
            return agg

        mask = ~np.isnan(X)
        agg.rows = X.shape[0]
        agg.n = mask.sum(axis=0).astype(float)
        agg.nulls = agg.rows - agg.n

        xz = np.where(mask, X, 0.0)
        yz = np.where(mask, y[:, None], 0.0)
        agg.mean = _safe_div(xz.sum(axis=0), agg.n)
        agg.y_mean = _safe_div(yz.sum(axis=0), agg.n)

        dx = np.where(mask, X - agg.mean, 0.0)
        dy = np.where(mask, y[:, None] - agg.y_mean, 0.0)
        agg.m2 = (dx * dx).sum(axis=0)
        agg.y_m2 = (dy * dy).sum(axis=0)
        agg.c_xy = (dx * dy).sum(axis=0)

        agg.min = np.where(mask, X, np.inf).min(axis=0)
        agg.max = np.where(mask, X, -np.inf).max(axis=0)

        if n_classes:
            one_hot = np.zeros((X.shape[0], n_classes))
            one_hot[np.arange(X.shape[0]), y.astype(int)] = 1.0
            agg.contingency = xz.T @ one_hot
            agg.class_counts = one_hot.sum(axis=0)
        return agg

    def merge(self, other: 'PartialAggregate') -> 'PartialAggregate':
        merged = PartialAggregate(len(self.n), self.contingency.shape[1])
        n = self.n + other.n
        weight = _safe_div(self.n * other.n, n)
        dx = other.mean - self.mean
        dy = other.y_mean - self.y_mean

        merged.rows = self.rows + other.rows
        merged.n = n
        merged.mean = self.mean + dx * _safe_div(other.n, n)
        merged.y_mean = self.y_mean + dy * _safe_div(other.n, n)
        merged.m2 = self.m2 + other.m2 + dx * dx * weight
        merged.y_m2 = self.y_m2 + other.y_m2 + dy * dy * weight
        merged.c_xy = self.c_xy + other.c_xy + dx * dy * weight
        merged.min = np.minimum(self.min, other.min)
        merged.max = np.maximum(self.max, other.max)
        merged.nulls = self.nulls + other.nulls
        merged.contingency = self.contingency + other.contingency
        merged.class_counts = self.class_counts + other.class_counts
        return merged

    def variance(self) -> np.ndarray:
        return np.maximum(_safe_div(self.m2, np.maximum(self.n - 1, 0)), 0.0)

    def correlation(self) -> np.ndarray:
        """Pearson correlation with the label; NaN where either side is constant"""
        den = np.sqrt(self.m2 * self.y_m2)
        with np.errstate(divide='ignore', invalid='ignore'):
            corr = np.where(den > 0, self.c_xy / den, np.nan)
        return np.clip(corr, -1.0, 1.0)


def sample_rows(data: pd.DataFrame, config: SanityCheckerConfig) -> pd.DataFrame:
    """Reproducible subsample bounded by the configured row limits"""
    if config.CHECK_SAMPLE >= 1.0:
        return data
    target = int(round(len(data) * config.CHECK_SAMPLE))
    target = max(config.SAMPLE_LOWER_LIMIT, min(config.SAMPLE_UPPER_LIMIT, target))
    if target >= len(data):
        return data
    logger.info(f"Sampling {target} of {len(data)} rows (checkSample={config.CHECK_SAMPLE})")
    return data.sample(n=target, random_state=config.SAMPLE_SEED)


def _reduce_partials(X: np.ndarray, y: np.ndarray, n_classes: int, config: SanityCheckerConfig) -> PartialAggregate:
    partitions = [idx for idx in np.array_split(np.arange(X.shape[0]), config.NUM_PARTITIONS) if len(idx)]
    if config.PARALLEL_PROCESSING and len(partitions) > 1:
        partials = Parallel(n_jobs=len(partitions), prefer="threads")(
            delayed(PartialAggregate.from_block)(X[idx], y[idx], n_classes) for idx in partitions
        )
    else:
        partials = [PartialAggregate.from_block(X[idx], y[idx], n_classes) for idx in partitions]
    return reduce(lambda a, b: a.merge(b), partials, PartialAggregate(X.shape[1], n_classes))


def aggregate_statistics(
    features: pd.DataFrame,
    label: pd.Series,
    config: Optional[SanityCheckerConfig] = None
) -> StatisticsResult:
    """
    Compute ColumnStatistics for every column of features.

    Moments (count, mean, variance, min, max, nulls) always cover every row
    with a label, so variance-based eligibility does not depend on sampling.
    Correlations and contingency sums are computed over the sampled rows.
    """
    config = config or SanityCheckerConfig()

    if len(features) != len(label) or not features.index.equals(label.index):
        raise SchemaError("Label and feature vector are not aligned row by row")

    non_numeric = [c for c in features.columns if not pd.api.types.is_numeric_dtype(features[c])]
    if non_numeric:
        raise SchemaError(f"Checked columns must be numeric, got {non_numeric[:5]}")

    infinite = [c for c in features.columns if np.isinf(features[c].to_numpy(dtype=float)).any()]
    if infinite:
        raise SchemaError(f"Checked columns must be finite, got infinite values in {infinite[:5]}")

    missing_label = label.isna()
    if missing_label.any():
        logger.warning(f"Dropping {int(missing_label.sum())} rows with a missing label '{label.name}'")
        features = features.loc[~missing_label]
        label = label.loc[~missing_label]

    label_context = LabelContext.infer(label, config.CATEGORICAL_LABEL, config.MAX_LABEL_CLASSES)
    n_classes = len(label_context.classes) if label_context.is_categorical else 0

    sampled = sample_rows(features, config).index
    X = features.loc[sampled].to_numpy(dtype=float)
    y = label_context.encode(label.loc[sampled])
    total = _reduce_partials(X, y, n_classes, config)

    if len(sampled) < len(features):
        X_all = features.to_numpy(dtype=float)
        moments = _reduce_partials(X_all, np.zeros(X_all.shape[0]), 0, config)
    else:
        moments = total

    variances = moments.variance()
    correlations = total.correlation()
    columns: Dict[str, ColumnStatistics] = {}

    for j, name in enumerate(features.columns):
        observed = moments.n[j] > 0
        corr = None
        if not label_context.is_categorical and not np.isnan(correlations[j]):
            corr = float(correlations[j])
        columns[name] = ColumnStatistics(
            name=name,
            count=int(moments.n[j]),
            mean=float(moments.mean[j]) if observed else 0.0,
            variance=float(variances[j]) if observed else 0.0,
            min=float(moments.min[j]) if observed else None,
            max=float(moments.max[j]) if observed else None,
            num_nulls=int(moments.nulls[j]),
            correlation_with_label=corr,
            contingency=tuple(float(v) for v in total.contingency[j]) if n_classes else None,
        )

    fraction = total.rows / len(features) if len(features) else 0.0
    logger.info(
        f"Aggregated statistics for {len(columns)} columns over {moments.rows} rows "
        f"({total.rows} sampled)"
    )
    return StatisticsResult(
        columns=columns,
        label=label_context,
        row_count=int(total.rows),
        sample_fraction=float(fraction),
        class_counts=tuple(float(v) for v in total.class_counts),
    )
