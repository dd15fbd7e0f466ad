# featureguard/lineage/graph.py
"""
Explicit feature derivation DAG.

Nodes are features (raw or derived) and vector columns. Feature -> feature
edges carry the TransformKind that produced the child; feature -> column edges
carry the DerivationKind recorded in the column descriptor. The graph is built
once per feature vector and traversed by the lineage propagator.
"""
import logging
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from featureguard.exceptions import SchemaError
from featureguard.features.feature_types import Feature, TransformKind
from featureguard.lineage.descriptors import ColumnDescriptorRegistry, DerivationKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureEdge:
    parent: str
    child: str
    kind: TransformKind


@dataclass(frozen=True)
class DerivationStep:
    """Columns emitted together by one structural expansion of one parent"""
    producer: str
    indicator_group: str
    parent: Optional[str]
    columns: Tuple[str, ...]


class LineageGraph:
    """Directed acyclic graph of features and the vector columns derived from them"""

    def __init__(self):
        self._features: "OrderedDict[str, Feature]" = OrderedDict()
        self._incoming: Dict[str, List[FeatureEdge]] = defaultdict(list)
        self._outgoing: Dict[str, List[FeatureEdge]] = defaultdict(list)
        self._columns_by_producer: Dict[str, List[str]] = defaultdict(list)
        self._column_kinds: Dict[str, DerivationKind] = {}
        self._steps: List[DerivationStep] = []

    @classmethod
    def build(cls, features: Iterable[Feature], registry: ColumnDescriptorRegistry) -> 'LineageGraph':
        graph = cls()
        for feature in features:
            graph.add_feature(feature)
        graph.attach_columns(registry)
        return graph

    def add_feature(self, feature: Feature):
        existing = self._features.get(feature.name)
        if existing is not None:
            if existing.ftype != feature.ftype or existing.parents != feature.parents:
                raise SchemaError(f"Conflicting definitions for feature '{feature.name}'")
            return
        self._features[feature.name] = feature
        for parent in feature.parents:
            if parent not in self._features:
                raise SchemaError(f"Parent '{parent}' of feature '{feature.name}' must be added first")
            edge = FeatureEdge(parent=parent, child=feature.name, kind=feature.transform)
            self._incoming[feature.name].append(edge)
            self._outgoing[parent].append(edge)

    def attach_columns(self, registry: ColumnDescriptorRegistry):
        steps: "OrderedDict[Tuple[str, str], List[str]]" = OrderedDict()
        for descriptor in registry:
            for name in set(descriptor.parent_feature_names) | {descriptor.producer}:
                if name not in self._features:
                    raise SchemaError(
                        f"Column '{descriptor.column_name}' references unknown feature '{name}'"
                    )
            self._columns_by_producer[descriptor.producer].append(descriptor.column_name)
            self._column_kinds[descriptor.column_name] = descriptor.derivation_kind
            if descriptor.eligible_for_association:
                key = (descriptor.producer, descriptor.indicator_group)
                steps.setdefault(key, []).append(descriptor.column_name)

        for (producer, group), columns in steps.items():
            parents = {p for c in columns for p in registry[c].parent_feature_names}
            parent = next(iter(parents)) if len(parents) == 1 else None
            self._steps.append(DerivationStep(producer, group, parent, tuple(columns)))

    @property
    def features(self) -> List[Feature]:
        return list(self._features.values())

    def feature(self, name: str) -> Feature:
        return self._features[name]

    @property
    def steps(self) -> List[DerivationStep]:
        return list(self._steps)

    def direct_output_columns(self, feature_name: str) -> List[str]:
        """Columns emitted by the feature's own vectorization"""
        return list(self._columns_by_producer.get(feature_name, []))

    def structural_parent(self, feature_name: str) -> Optional[str]:
        """Single parent reached over a recognized structural edge, if any"""
        edges = self._incoming.get(feature_name, [])
        if len(edges) == 1 and edges[0].kind.is_structural:
            return edges[0].parent
        return None

    def ancestors(self, feature_name: str) -> Set[str]:
        seen: Set[str] = set()
        stack = [e.parent for e in self._incoming.get(feature_name, [])]
        while stack:
            name = stack.pop()
            if name not in seen:
                seen.add(name)
                stack.extend(e.parent for e in self._incoming.get(name, []))
        return seen

    def topological_order(self) -> List[Feature]:
        """Features ordered so that parents precede children"""
        indegree = {name: len(self._incoming.get(name, [])) for name in self._features}
        ready = [name for name, degree in indegree.items() if degree == 0]
        ordered = []
        while ready:
            name = ready.pop(0)
            ordered.append(self._features[name])
            for edge in self._outgoing.get(name, []):
                indegree[edge.child] -= 1
                if indegree[edge.child] == 0:
                    ready.append(edge.child)
        if len(ordered) != len(self._features):
            raise SchemaError("Feature lineage contains a cycle")
        return ordered
