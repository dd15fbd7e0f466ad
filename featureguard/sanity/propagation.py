# featureguard/sanity/propagation.py
"""
Lineage propagation of drop decisions.

Two rules run until nothing changes:

1. Group completion. When an indicator group holds a leaking column and more
   than GROUP_COMPLETION_FRACTION of its members are dropped (or all of
   them), the whole group is dropped.
2. Parent cascade. When every column of a derivation step is dropped and at
   least one of them leaks, the direct output columns of the step's single
   parent are dropped. The walk then follows bucketize edges upward and stops
   at unary lambda edges and at columns with several parents.

Columns dropped only for zero variance or low correlation never start either
rule. Columns of protected features are never dropped.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from featureguard.config import SanityCheckerConfig
from featureguard.lineage.descriptors import ColumnDescriptorRegistry
from featureguard.lineage.graph import LineageGraph
from featureguard.sanity.decision import ColumnFlag, DropReason

logger = logging.getLogger(__name__)


@dataclass
class PropagationResult:
    dropped: List[str]
    reasons: Dict[str, List[ColumnFlag]]
    protected: List[str] = field(default_factory=list)

    @property
    def leaking(self) -> List[str]:
        return [c for c in self.dropped if any(f.reason.is_leak for f in self.reasons[c])]


class LineagePropagator:
    """Expand initial flags over indicator groups and the feature lineage"""

    def __init__(self, registry: ColumnDescriptorRegistry, lineage: LineageGraph, config: SanityCheckerConfig):
        self.registry = registry
        self.lineage = lineage
        self.config = config
        self.protected_features = set(config.PROTECTED_FEATURES)

    def is_protected(self, column: str) -> bool:
        descriptor = self.registry[column]
        names = set(descriptor.parent_feature_names) | {descriptor.producer}
        return bool(names & self.protected_features)

    def propagate(self, flags: Dict[str, List[ColumnFlag]], checked: Iterable[str]) -> PropagationResult:
        checked = [c for c in checked if c in self.registry]
        checked_set = set(checked)
        reasons: Dict[str, List[ColumnFlag]] = {}
        dropped: Set[str] = set()
        leaking: Set[str] = set()
        protected: Set[str] = set()

        def drop(column: str, flag: ColumnFlag) -> bool:
            if column not in checked_set or column in dropped:
                return False
            if self.is_protected(column):
                if column not in protected:
                    logger.info(f"Keeping protected column '{column}' ({flag.describe()})")
                    protected.add(column)
                return False
            dropped.add(column)
            reasons.setdefault(column, []).append(flag)
            if flag.reason.is_leak:
                leaking.add(column)
            return True

        for column, column_flags in flags.items():
            for flag in column_flags:
                if column in dropped:
                    reasons[column].append(flag)
                    if flag.reason.is_leak:
                        leaking.add(column)
                else:
                    drop(column, flag)

        groups = {
            group: [c for c in members if c in checked_set]
            for group, members in self.registry.groups().items()
        }
        steps = self.lineage.steps

        rounds = 0
        changed = True
        while changed:
            changed = False
            rounds += 1

            for group, members in groups.items():
                if not members or not any(c in leaking for c in members):
                    continue
                n_dropped = sum(c in dropped for c in members)
                if n_dropped == len(members) or n_dropped / len(members) > self.config.GROUP_COMPLETION_FRACTION:
                    for column in members:
                        changed |= drop(column, ColumnFlag(column, DropReason.GROUP_COMPLETION, source=group))

            for step in steps:
                if step.parent is None:
                    continue
                columns = [c for c in step.columns if c in checked_set]
                if not columns or not all(c in dropped for c in columns):
                    continue
                if not any(c in leaking for c in columns):
                    continue
                target = step.parent
                while target is not None:
                    for column in self.lineage.direct_output_columns(target):
                        changed |= drop(column, ColumnFlag(column, DropReason.PARENT_CASCADE, source=step.producer))
                    target = self.lineage.structural_parent(target)

        ordered = [c for c in checked if c in dropped]
        logger.info(
            f"Propagation finished after {rounds} rounds: {len(flags)} flagged, "
            f"{len(ordered)} dropped, {len(protected)} protected"
        )
        return PropagationResult(
            dropped=ordered,
            reasons={c: reasons[c] for c in ordered},
            protected=[c for c in checked if c in protected],
        )
