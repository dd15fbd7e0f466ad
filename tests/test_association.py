# tests/test_association.py
import math

import pytest
import numpy as np

from featureguard.lineage.descriptors import ColumnDescriptor, ColumnDescriptorRegistry, DerivationKind
from featureguard.sanity.association import AssociationEngine, CategoricalStats, cramers_v, mutual_information
from featureguard.sanity.statistics import ColumnStatistics, LabelContext, StatisticsResult


def column(name, contingency, variance=0.25):
    return ColumnStatistics(
        name=name, count=int(sum(contingency)), mean=0.5, variance=variance,
        min=0.0, max=1.0, num_nulls=0, contingency=tuple(contingency)
    )


class TestCramersV:

    def test_hand_computed_table(self):
        """[[20, 10], [5, 15]] has chi2 = 8.333 over 50 observations"""
        table = np.array([[20.0, 10.0], [5.0, 15.0]])
        assert cramers_v(table) == pytest.approx(math.sqrt(8.3333333 / 50.0), rel=1e-6)
        assert cramers_v(table) == pytest.approx(0.40825, abs=1e-5)

    def test_perfect_association(self):
        assert cramers_v(np.array([[30.0, 0.0], [0.0, 20.0]])) == pytest.approx(1.0)

    def test_independent_table(self):
        table = np.array([[10.0, 20.0], [20.0, 40.0]])
        assert cramers_v(table) == pytest.approx(0.0, abs=1e-12)
        mi, _ = mutual_information(table)
        assert mi == pytest.approx(0.0, abs=1e-12)

    def test_degenerate_tables_give_zero(self):
        assert cramers_v(np.array([[5.0, 7.0], [0.0, 0.0]])) == 0.0
        assert cramers_v(np.array([[5.0, 0.0], [3.0, 0.0]])) == 0.0
        assert cramers_v(np.zeros((2, 2))) == 0.0

    def test_mutual_information_in_bits(self):
        mi, pmi = mutual_information(np.array([[25.0, 0.0], [0.0, 25.0]]))

        assert mi == pytest.approx(1.0)
        assert pmi[0, 0] == pytest.approx(1.0)
        assert np.isnan(pmi[0, 1])


class TestAssociationEngine:

    @pytest.fixture
    def registry(self):
        return ColumnDescriptorRegistry([
            ColumnDescriptor('num', ('num',), DerivationKind.DIRECT_NUMERIC, 'num'),
            ColumnDescriptor('num_NullIndicatorValue', ('num',), DerivationKind.NULL_INDICATOR, 'num',
                             'num', 'NullIndicatorValue'),
            ColumnDescriptor('color_red', ('color',), DerivationKind.ONE_HOT_INDICATOR, 'color', 'color', 'red'),
            ColumnDescriptor('color_blue', ('color',), DerivationKind.ONE_HOT_INDICATOR, 'color', 'color', 'blue'),
            ColumnDescriptor('color_OTHER', ('color',), DerivationKind.ONE_HOT_INDICATOR, 'color', 'color', 'OTHER'),
            ColumnDescriptor('tags_x', ('tags',), DerivationKind.MULTI_VALUE_EXPANDED, 'tags', 'tags', 'x'),
        ])

    @pytest.fixture
    def stats(self):
        label = LabelContext(name='y', is_categorical=True, classes=(0, 1))
        columns = {
            'num': column('num', (10.0, 20.0)),
            'num_NullIndicatorValue': column('num_NullIndicatorValue', (20.0, 10.0)),
            'color_red': column('color_red', (30.0, 0.0)),
            'color_blue': column('color_blue', (0.0, 20.0)),
            'color_OTHER': column('color_OTHER', (0.0, 0.0), variance=0.0),
            'tags_x': column('tags_x', (25.0, 5.0)),
        }
        return StatisticsResult(columns=columns, label=label, row_count=50,
                                sample_fraction=1.0, class_counts=(30.0, 20.0))

    def test_only_eligible_columns_enter(self, registry, stats):
        groups = AssociationEngine(registry, min_variance=1e-5).eligible_groups(stats)

        assert groups == {'num': ['num_NullIndicatorValue'], 'color': ['color_red', 'color_blue']}

    def test_single_member_group_gets_complement_row(self, registry, stats):
        table = AssociationEngine(registry).group_table(['num_NullIndicatorValue'], stats)
        assert table.tolist() == [[20.0, 10.0], [10.0, 10.0]]

    def test_group_value_shared_by_members(self, registry, stats):
        result = AssociationEngine(registry, min_variance=1e-5).compute(stats)

        assert result.categorical_features == ('num_NullIndicatorValue', 'color_red', 'color_blue')
        assert result.cramers_v('color_red') == pytest.approx(1.0)
        assert result.cramers_v('color_blue') == pytest.approx(1.0)
        assert result.cramers_v('color_OTHER') is None
        assert result.cramers_v('num_NullIndicatorValue') < 0.5
        assert set(result.pointwise_mutual_info) == {'0', '1'}
        assert result.pointwise_mutual_info['1'][1] is None

    def test_non_categorical_label_gives_empty_stats(self, registry, stats):
        continuous = StatisticsResult(
            columns=stats.columns, label=LabelContext(name='y', is_categorical=False),
            row_count=50, sample_fraction=1.0
        )
        assert AssociationEngine(registry).compute(continuous) == CategoricalStats()
