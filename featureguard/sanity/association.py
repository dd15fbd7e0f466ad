# featureguard/sanity/association.py
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.stats import chi2_contingency

from featureguard.lineage.descriptors import ColumnDescriptorRegistry
from featureguard.sanity.statistics import StatisticsResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoricalStats:
    """Association of every eligible column with a categorical label"""
    categorical_features: Tuple[str, ...] = ()
    cramers_vs: Tuple[float, ...] = ()
    mutual_infos: Tuple[float, ...] = ()
    pointwise_mutual_info: Dict[str, Tuple[Optional[float], ...]] = field(default_factory=dict)

    def cramers_v(self, column: str) -> Optional[float]:
        try:
            return self.cramers_vs[self.categorical_features.index(column)]
        except ValueError:
            return None

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(self.categorical_features, self.cramers_vs))


@dataclass(frozen=True)
class GroupAssociation:
    group: str
    columns: Tuple[str, ...]
    cramers_v: float
    mutual_info: float
    pmi: Tuple[Tuple[Optional[float], ...], ...]


def _trim(table: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Remove empty rows and columns, returning the kept row and column indices"""
    rows = np.flatnonzero(table.sum(axis=1) > 0)
    cols = np.flatnonzero(table.sum(axis=0) > 0)
    return table[np.ix_(rows, cols)], rows, cols


def cramers_v(table: np.ndarray) -> float:
    """
    Cramer's V of a contingency table

    Uses Pearson's chi-squared statistic without continuity correction.
    Degenerate tables (a single row or column after trimming) give 0.
    """
    trimmed, _, _ = _trim(np.asarray(table, dtype=float))
    r, c = trimmed.shape
    if r < 2 or c < 2:
        return 0.0
    total = trimmed.sum()
    chi2 = chi2_contingency(trimmed, correction=False)[0]
    return float(min(math.sqrt(chi2 / (total * (min(r, c) - 1))), 1.0))


def mutual_information(table: np.ndarray) -> Tuple[float, np.ndarray]:
    """Mutual information in bits and the pointwise matrix (NaN for empty cells)"""
    table = np.asarray(table, dtype=float)
    total = table.sum()
    pmi = np.full(table.shape, np.nan)
    if total <= 0:
        return 0.0, pmi

    joint = table / total
    expected = np.outer(joint.sum(axis=1), joint.sum(axis=0))
    nonzero = joint > 0
    pmi[nonzero] = np.log2(joint[nonzero] / expected[nonzero])
    mi = float(np.sum(joint[nonzero] * pmi[nonzero]))
    return max(mi, 0.0), pmi


class AssociationEngine:
    """Cramer's V and mutual information per indicator group"""

    def __init__(self, registry: ColumnDescriptorRegistry, min_variance: float = 0.0):
        self.registry = registry
        self.min_variance = min_variance

    def eligible_groups(self, stats: StatisticsResult) -> Dict[str, List[str]]:
        """Indicator group -> members that may enter the test"""
        groups: Dict[str, List[str]] = {}
        for descriptor in self.registry:
            column = descriptor.column_name
            if column not in stats.columns or not descriptor.eligible_for_association:
                continue
            if stats[column].variance <= self.min_variance:
                continue
            groups.setdefault(descriptor.indicator_group, []).append(column)
        return groups

    def group_table(self, members: List[str], stats: StatisticsResult) -> np.ndarray:
        table = np.array([stats[c].contingency for c in members], dtype=float)
        if len(members) == 1:
            absent = np.asarray(stats.class_counts, dtype=float) - table[0]
            table = np.vstack([table, np.maximum(absent, 0.0)])
        return table

    def associate(self, group: str, members: List[str], stats: StatisticsResult) -> GroupAssociation:
        table = self.group_table(members, stats)
        v = cramers_v(table)
        mi, pmi = mutual_information(table)
        rows = tuple(
            tuple(None if np.isnan(x) else float(x) for x in pmi[i])
            for i in range(len(members))
        )
        logger.debug(f"Group '{group}': {len(members)} columns, cramersV={v:.4f}, mi={mi:.4f}")
        return GroupAssociation(group=group, columns=tuple(members), cramers_v=v, mutual_info=mi, pmi=rows)

    def compute(self, stats: StatisticsResult) -> CategoricalStats:
        label = stats.label
        if not label.is_categorical:
            logger.info("Label is not categorical; skipping Cramer's V")
            return CategoricalStats()

        features: List[str] = []
        vs: List[float] = []
        mis: List[float] = []
        pmi: Dict[str, List[Optional[float]]] = {str(c): [] for c in label.classes}

        for group, members in self.eligible_groups(stats).items():
            result = self.associate(group, members, stats)
            for i, column in enumerate(result.columns):
                features.append(column)
                vs.append(result.cramers_v)
                mis.append(result.mutual_info)
                for k, cls in enumerate(label.classes):
                    pmi[str(cls)].append(result.pmi[i][k])

        order = {name: i for i, name in enumerate(self.registry.column_names)}
        ranked = sorted(range(len(features)), key=lambda i: order[features[i]])

        logger.info(f"Computed Cramer's V for {len(features)} columns against {len(label.classes)} label classes")
        return CategoricalStats(
            categorical_features=tuple(features[i] for i in ranked),
            cramers_vs=tuple(vs[i] for i in ranked),
            mutual_infos=tuple(mis[i] for i in ranked),
            pointwise_mutual_info={k: tuple(v[i] for i in ranked) for k, v in pmi.items()},
        )
