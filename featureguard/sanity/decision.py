# featureguard/sanity/decision.py
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from featureguard.config import SanityCheckerConfig
from featureguard.sanity.association import CategoricalStats
from featureguard.sanity.statistics import StatisticsResult

logger = logging.getLogger(__name__)


class DropReason(str, Enum):
    """Why a column was removed"""
    ZERO_VARIANCE = "zeroVariance"
    HIGH_CORRELATION = "highCorrelation"
    LOW_CORRELATION = "lowCorrelation"
    CRAMERS_V = "cramersV"
    GROUP_COMPLETION = "groupCompletion"
    PARENT_CASCADE = "parentCascade"

    @property
    def is_leak(self) -> bool:
        """Leak reasons implicate related columns; the rest only remove the column itself"""
        return self not in (DropReason.ZERO_VARIANCE, DropReason.LOW_CORRELATION)


@dataclass(frozen=True)
class ColumnFlag:
    column: str
    reason: DropReason
    value: Optional[float] = None
    threshold: Optional[float] = None
    source: Optional[str] = None

    def describe(self) -> str:
        if self.reason is DropReason.ZERO_VARIANCE:
            return f"variance {self.value:.6g} <= {self.threshold:.6g}"
        if self.reason is DropReason.HIGH_CORRELATION:
            return f"|correlation| {abs(self.value):.4f} >= {self.threshold:.4f}"
        if self.reason is DropReason.LOW_CORRELATION:
            if self.value is None:
                return f"no correlation with label (min {self.threshold:.4f})"
            return f"|correlation| {abs(self.value):.4f} < {self.threshold:.4f}"
        if self.reason is DropReason.CRAMERS_V:
            return f"cramersV {self.value:.4f} >= {self.threshold:.4f}"
        if self.reason is DropReason.GROUP_COMPLETION:
            return f"indicator group '{self.source}' leaks"
        return f"all columns derived from '{self.source}' leak"


class LeakageDecisionEngine:
    """Apply variance, correlation and Cramer's V thresholds to checked columns"""

    def __init__(self, config: SanityCheckerConfig):
        self.config = config

    def decide(self, stats: StatisticsResult, categorical: CategoricalStats) -> Dict[str, List[ColumnFlag]]:
        """Initial flags per column, before lineage propagation"""
        config = self.config
        label = stats.label
        cramers = categorical.as_dict()
        flags: Dict[str, List[ColumnFlag]] = {}

        for column, col_stats in stats.columns.items():
            column_flags = []

            if col_stats.variance <= config.MIN_VARIANCE:
                column_flags.append(ColumnFlag(column, DropReason.ZERO_VARIANCE,
                                               col_stats.variance, config.MIN_VARIANCE))

            elif not label.is_categorical:
                corr = col_stats.correlation_with_label
                if corr is not None and abs(corr) >= config.CORRELATION_CUTOFF:
                    column_flags.append(ColumnFlag(column, DropReason.HIGH_CORRELATION,
                                                   corr, config.CORRELATION_CUTOFF))
                elif config.MIN_CORRELATION > 0 and (corr is None or abs(corr) < config.MIN_CORRELATION):
                    column_flags.append(ColumnFlag(column, DropReason.LOW_CORRELATION,
                                                   corr, config.MIN_CORRELATION))

            elif column in cramers and cramers[column] >= config.CRAMERS_V_CUTOFF:
                column_flags.append(ColumnFlag(column, DropReason.CRAMERS_V,
                                               cramers[column], config.CRAMERS_V_CUTOFF))

            if column_flags:
                flags[column] = column_flags

        counts: Dict[str, int] = {}
        for column_flags in flags.values():
            for flag in column_flags:
                counts[flag.reason.value] = counts.get(flag.reason.value, 0) + 1
        logger.info(f"Initial flags: {len(flags)} columns {counts}")
        return flags
