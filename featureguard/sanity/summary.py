# featureguard/sanity/summary.py
"""
SanityCheckerSummary and its metadata document.

The document is a field-named JSON-compatible dict. Every key is a member of
SummaryField; decoding checks presence and type of every field and raises
SummaryDecodingError instead of returning a partially populated summary.
"""
import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from featureguard.exceptions import SummaryDecodingError
from featureguard.sanity.association import CategoricalStats
from featureguard.sanity.statistics import LabelContext

SUMMARY_METADATA_KEY = "sanity_checker_summary"


class SummaryField(str, Enum):
    """Closed set of keys used in the summary document"""
    NAMES = "names"
    DROPPED = "dropped"
    CATEGORICAL_STATS = "categoricalStats"
    CORRELATION_STATS = "correlationStats"
    FEATURE_STATISTICS = "featureStatistics"
    DROP_REASONS = "dropReasons"
    LABEL_CONTEXT = "labelContext"

    CATEGORICAL_FEATURES = "categoricalFeatures"
    CRAMERS_VS = "cramersVs"
    MUTUAL_INFOS = "mutualInfos"
    POINTWISE_MUTUAL_INFO = "pointwiseMutualInfo"

    FEATURE_NAMES = "featureNames"
    VALUES = "values"
    CORRELATION_TYPE = "correlationType"

    COUNT = "count"
    SAMPLE_FRACTION = "sampleFraction"
    MEANS = "means"
    VARIANCES = "variances"
    MINS = "mins"
    MAXS = "maxs"
    NUM_NULLS = "numNulls"

    LABEL_NAME = "labelName"
    IS_CATEGORICAL = "isCategorical"
    CLASSES = "classes"


@dataclass(frozen=True)
class CorrelationStats:
    feature_names: Tuple[str, ...] = ()
    values: Tuple[Optional[float], ...] = ()
    correlation_type: str = "pearson"


@dataclass(frozen=True)
class FeatureStatistics:
    """Per-column moments, parallel to the summary names"""
    count: int = 0
    sample_fraction: float = 1.0
    means: Tuple[float, ...] = ()
    variances: Tuple[float, ...] = ()
    mins: Tuple[Optional[float], ...] = ()
    maxs: Tuple[Optional[float], ...] = ()
    num_nulls: Tuple[int, ...] = ()


@dataclass(frozen=True)
class SanityCheckerSummary:
    names: Tuple[str, ...]
    dropped: Tuple[str, ...]
    categorical_stats: CategoricalStats
    correlation_stats: CorrelationStats
    feature_statistics: FeatureStatistics
    drop_reasons: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    label_context: LabelContext = field(default_factory=lambda: LabelContext(name="label", is_categorical=False))

    def to_metadata(self) -> Dict[str, Any]:
        cat = self.categorical_stats
        corr = self.correlation_stats
        fs = self.feature_statistics
        label = self.label_context
        return {
            SummaryField.NAMES.value: list(self.names),
            SummaryField.DROPPED.value: list(self.dropped),
            SummaryField.CATEGORICAL_STATS.value: {
                SummaryField.CATEGORICAL_FEATURES.value: list(cat.categorical_features),
                SummaryField.CRAMERS_VS.value: list(cat.cramers_vs),
                SummaryField.MUTUAL_INFOS.value: list(cat.mutual_infos),
                SummaryField.POINTWISE_MUTUAL_INFO.value: {k: list(v) for k, v in cat.pointwise_mutual_info.items()},
            },
            SummaryField.CORRELATION_STATS.value: {
                SummaryField.FEATURE_NAMES.value: list(corr.feature_names),
                SummaryField.VALUES.value: list(corr.values),
                SummaryField.CORRELATION_TYPE.value: corr.correlation_type,
            },
            SummaryField.FEATURE_STATISTICS.value: {
                SummaryField.COUNT.value: fs.count,
                SummaryField.SAMPLE_FRACTION.value: fs.sample_fraction,
                SummaryField.MEANS.value: list(fs.means),
                SummaryField.VARIANCES.value: list(fs.variances),
                SummaryField.MINS.value: list(fs.mins),
                SummaryField.MAXS.value: list(fs.maxs),
                SummaryField.NUM_NULLS.value: list(fs.num_nulls),
            },
            SummaryField.DROP_REASONS.value: {k: list(v) for k, v in self.drop_reasons.items()},
            SummaryField.LABEL_CONTEXT.value: {
                SummaryField.LABEL_NAME.value: label.name,
                SummaryField.IS_CATEGORICAL.value: label.is_categorical,
                SummaryField.CLASSES.value: list(label.classes),
            },
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_metadata(), indent=indent, allow_nan=False)

    @classmethod
    def from_json(cls, text: str) -> 'SanityCheckerSummary':
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise SummaryDecodingError(f"Summary is not valid JSON: {e}") from e
        return cls.from_metadata(data)

    @classmethod
    def from_metadata(cls, data: Any) -> 'SanityCheckerSummary':
        root = _Decoder(data, "summary")

        cat = root.section(SummaryField.CATEGORICAL_STATS)
        categorical = CategoricalStats(
            categorical_features=cat.strings(SummaryField.CATEGORICAL_FEATURES),
            cramers_vs=cat.floats(SummaryField.CRAMERS_VS),
            mutual_infos=cat.floats(SummaryField.MUTUAL_INFOS),
            pointwise_mutual_info=cat.float_map(SummaryField.POINTWISE_MUTUAL_INFO),
        )
        cat.parallel(SummaryField.CRAMERS_VS, categorical.cramers_vs, categorical.categorical_features)
        cat.parallel(SummaryField.MUTUAL_INFOS, categorical.mutual_infos, categorical.categorical_features)
        for values in categorical.pointwise_mutual_info.values():
            cat.parallel(SummaryField.POINTWISE_MUTUAL_INFO, values, categorical.categorical_features)

        corr = root.section(SummaryField.CORRELATION_STATS)
        correlation = CorrelationStats(
            feature_names=corr.strings(SummaryField.FEATURE_NAMES),
            values=corr.floats(SummaryField.VALUES, optional=True),
            correlation_type=corr.string(SummaryField.CORRELATION_TYPE),
        )
        corr.parallel(SummaryField.VALUES, correlation.values, correlation.feature_names)

        names = root.strings(SummaryField.NAMES)
        fs = root.section(SummaryField.FEATURE_STATISTICS)
        statistics = FeatureStatistics(
            count=fs.integer(SummaryField.COUNT),
            sample_fraction=fs.number(SummaryField.SAMPLE_FRACTION),
            means=fs.floats(SummaryField.MEANS),
            variances=fs.floats(SummaryField.VARIANCES),
            mins=fs.floats(SummaryField.MINS, optional=True),
            maxs=fs.floats(SummaryField.MAXS, optional=True),
            num_nulls=fs.integers(SummaryField.NUM_NULLS),
        )
        for key in (SummaryField.MEANS, SummaryField.VARIANCES, SummaryField.MINS,
                    SummaryField.MAXS, SummaryField.NUM_NULLS):
            fs.parallel(key, getattr(statistics, _ATTRS[key]), names)

        label = root.section(SummaryField.LABEL_CONTEXT)
        label_context = LabelContext(
            name=label.string(SummaryField.LABEL_NAME),
            is_categorical=label.boolean(SummaryField.IS_CATEGORICAL),
            classes=tuple(label.array(SummaryField.CLASSES)),
        )

        dropped = root.strings(SummaryField.DROPPED)
        unknown = sorted(set(dropped) - set(names))
        if unknown:
            raise SummaryDecodingError(f"Dropped columns {unknown[:5]} are not among the checked names",
                                       field=SummaryField.DROPPED.value)

        return cls(
            names=names,
            dropped=dropped,
            categorical_stats=categorical,
            correlation_stats=correlation,
            feature_statistics=statistics,
            drop_reasons=root.string_map(SummaryField.DROP_REASONS),
            label_context=label_context,
        )


_ATTRS = {
    SummaryField.MEANS: 'means',
    SummaryField.VARIANCES: 'variances',
    SummaryField.MINS: 'mins',
    SummaryField.MAXS: 'maxs',
    SummaryField.NUM_NULLS: 'num_nulls',
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class _Decoder:
    """Typed access to one JSON object of the summary document"""

    def __init__(self, data: Any, path: str):
        if not isinstance(data, dict):
            raise SummaryDecodingError(f"Expected an object at '{path}', got {type(data).__name__}")
        self.data = data
        self.path = path

    def _get(self, key: SummaryField) -> Any:
        if key.value not in self.data:
            raise SummaryDecodingError(f"Missing required field in {self.path}", field=key.value)
        return self.data[key.value]

    def _fail(self, key: SummaryField, expected: str):
        raise SummaryDecodingError(f"Expected {expected} in {self.path}", field=key.value)

    def section(self, key: SummaryField) -> '_Decoder':
        value = self._get(key)
        if not isinstance(value, dict):
            self._fail(key, "an object")
        return _Decoder(value, f"{self.path}.{key.value}")

    def array(self, key: SummaryField) -> List[Any]:
        value = self._get(key)
        if not isinstance(value, list):
            self._fail(key, "an array")
        return value

    def strings(self, key: SummaryField) -> Tuple[str, ...]:
        values = self.array(key)
        if not all(isinstance(v, str) for v in values):
            self._fail(key, "an array of strings")
        return tuple(values)

    def floats(self, key: SummaryField, optional: bool = False) -> Tuple[Optional[float], ...]:
        values = self.array(key)
        return tuple(self._float(key, v, optional) for v in values)

    def integers(self, key: SummaryField) -> Tuple[int, ...]:
        values = self.array(key)
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
            self._fail(key, "an array of integers")
        return tuple(values)

    def _float(self, key: SummaryField, value: Any, optional: bool) -> Optional[float]:
        if value is None and optional:
            return None
        if not _is_number(value):
            self._fail(key, "finite numbers" + (" or null" if optional else ""))
        return float(value)

    def float_map(self, key: SummaryField) -> Dict[str, Tuple[Optional[float], ...]]:
        value = self._get(key)
        if not isinstance(value, dict) or not all(isinstance(v, list) for v in value.values()):
            self._fail(key, "an object of arrays")
        return {k: tuple(self._float(key, x, True) for x in v) for k, v in value.items()}

    def string_map(self, key: SummaryField) -> Dict[str, Tuple[str, ...]]:
        value = self._get(key)
        if not isinstance(value, dict):
            self._fail(key, "an object of string arrays")
        for v in value.values():
            if not isinstance(v, list) or not all(isinstance(x, str) for x in v):
                self._fail(key, "an object of string arrays")
        return {k: tuple(v) for k, v in value.items()}

    def string(self, key: SummaryField) -> str:
        value = self._get(key)
        if not isinstance(value, str):
            self._fail(key, "a string")
        return value

    def boolean(self, key: SummaryField) -> bool:
        value = self._get(key)
        if not isinstance(value, bool):
            self._fail(key, "a boolean")
        return value

    def number(self, key: SummaryField) -> float:
        return self._float(key, self._get(key), False)

    def integer(self, key: SummaryField) -> int:
        value = self._get(key)
        if not isinstance(value, int) or isinstance(value, bool):
            self._fail(key, "an integer")
        return value

    def parallel(self, key: SummaryField, values: Tuple, reference: Tuple):
        if len(values) != len(reference):
            raise SummaryDecodingError(
                f"Expected {len(reference)} entries in {self.path}, got {len(values)}",
                field=key.value
            )
