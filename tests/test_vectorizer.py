# tests/test_vectorizer.py
import pytest
import pandas as pd
import numpy as np

from featureguard.config import VectorizerConfig
from featureguard.exceptions import SchemaError
from featureguard.features.feature_types import Feature, FeatureType
from featureguard.features.transformers import NumericBucketizer, UnaryLambdaTransformer
from featureguard.features.vectorizer import FeatureVectorizer, order_features
from featureguard.lineage.descriptors import DerivationKind


class TestFeatureVectorizer:

    @pytest.fixture
    def sample_data(self):
        """Small mixed-type frame"""
        return pd.DataFrame({
            'age': [25.0, np.nan, 40.0, 31.0, 22.0, np.nan],
            'color': ['red', 'blue', 'red', None, 'green', 'red'],
            'flag': [True, False, None, True, True, False],
        })

    @pytest.fixture
    def features(self):
        return [
            Feature.raw('age', FeatureType.REAL),
            Feature.raw('color', FeatureType.PICKLIST),
            Feature.raw('flag', FeatureType.BINARY),
        ]

    def test_column_naming_and_kinds(self, sample_data, features):
        vector = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit_transform(sample_data, features)

        assert vector.column_names == [
            'age', 'age_NullIndicatorValue',
            'color_red', 'color_blue', 'color_green', 'color_OTHER', 'color_NullIndicatorValue',
            'flag', 'flag_NullIndicatorValue',
        ]
        assert vector.registry['age'].derivation_kind is DerivationKind.DIRECT_NUMERIC
        assert vector.registry['color_red'].indicator_group == 'color'
        assert vector.registry['color_NullIndicatorValue'].derivation_kind is DerivationKind.NULL_INDICATOR

    def test_numeric_nulls_filled_with_mean(self, sample_data, features):
        vector = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit_transform(sample_data, features)

        assert vector.data['age'].iloc[1] == pytest.approx(29.5)
        assert vector.data['age_NullIndicatorValue'].tolist() == [0.0, 1.0, 0.0, 0.0, 0.0, 1.0]
        assert vector.data['flag'].tolist() == [1.0, 0.0, 0.0, 1.0, 1.0, 0.0]

    def test_infinite_numeric_values_become_missing(self, sample_data, features):
        data = sample_data.copy()
        data.loc[0, 'age'] = -np.inf
        vector = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit_transform(data, features)

        assert vector.data['age'].iloc[0] == pytest.approx(31.0)
        assert vector.data['age_NullIndicatorValue'].tolist() == [1.0, 1.0, 0.0, 0.0, 0.0, 1.0]
        assert np.isfinite(vector.data.to_numpy()).all()

    def test_indicator_rows_are_exclusive(self, sample_data, features):
        vector = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit_transform(sample_data, features)
        group = vector.registry.groups()['color']

        assert (vector.data[group].sum(axis=1) == 1.0).all()

    def test_unseen_category_goes_to_other(self, sample_data, features):
        vectorizer = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit(sample_data, features)
        fresh = sample_data.copy()
        fresh.loc[0, 'color'] = 'purple'

        vector = vectorizer.transform(fresh)

        assert vector.data.loc[0, 'color_OTHER'] == 1.0
        assert vector.data.loc[0, ['color_red', 'color_blue', 'color_green']].sum() == 0.0

    def test_top_k_and_min_support(self):
        data = pd.DataFrame({'c': ['a'] * 5 + ['b'] * 4 + ['c'] * 4 + ['d']})
        vector = FeatureVectorizer(VectorizerConfig(TOP_K=2, MIN_SUPPORT=2)).fit_transform(
            data, [Feature.raw('c', FeatureType.PICKLIST)]
        )

        assert vector.column_names == ['c_a', 'c_b', 'c_OTHER', 'c_NullIndicatorValue']
        assert vector.data['c_OTHER'].sum() == 5.0

    def test_response_feature_is_skipped(self, sample_data, features):
        label = Feature.raw('age', FeatureType.REAL, is_response=True)
        vector = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit_transform(sample_data, [label] + features[1:])

        assert 'age' not in vector.column_names

    def test_non_binary_value_raises(self, features):
        data = pd.DataFrame({'flag': [True, 'maybe']})
        with pytest.raises(SchemaError):
            FeatureVectorizer().fit(data, [Feature.raw('flag', FeatureType.BINARY)])

    def test_numeric_type_mismatch_raises(self):
        data = pd.DataFrame({'age': [1.0, 'old']})
        with pytest.raises(SchemaError):
            FeatureVectorizer().fit(data, [Feature.raw('age', FeatureType.REAL)])

    def test_missing_column_raises(self, sample_data):
        with pytest.raises(SchemaError):
            FeatureVectorizer().fit(sample_data, [Feature.raw('height', FeatureType.REAL)])

    def test_transform_requires_fit(self, sample_data):
        with pytest.raises(ValueError):
            FeatureVectorizer().transform(sample_data)

    def test_map_and_multi_value_kinds(self):
        data = pd.DataFrame({
            'tags': [['x', 'y'], ['x'], [], None],
            'scores': [{'a': 1, 'b': 2}, {'a': 3}, {}, None],
        })
        features = [
            Feature.raw('tags', FeatureType.MULTI_PICKLIST),
            Feature.raw('scores', FeatureType.INTEGRAL_MAP),
        ]
        vector = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit_transform(data, features)

        assert vector.registry['tags_x'].derivation_kind is DerivationKind.MULTI_VALUE_EXPANDED
        assert vector.data['tags_x'].tolist() == [1.0, 1.0, 0.0, 0.0]
        assert vector.data['tags_NullIndicatorValue'].tolist() == [0.0, 0.0, 1.0, 1.0]
        assert vector.registry['scores_a'].derivation_kind is DerivationKind.MAP_EXPANDED
        assert vector.registry['scores_b_NullIndicatorValue'].indicator_group == 'scores_b'
        assert vector.data['scores_a'].tolist() == [1.0, 3.0, 2.0, 2.0]
        assert not any(d.eligible_for_association for d in vector.registry)

    def test_bucketizer_columns(self):
        data = pd.DataFrame({'revenue': [-0.5, 0.0, 5.0, np.nan, -3.0]})
        revenue = Feature.raw('revenue', FeatureType.CURRENCY)
        bucketizer = NumericBucketizer([-1.0, 0.0, 1.0, float('inf')]).set_input(revenue)

        vector = FeatureVectorizer().fit_transform(data, [revenue, bucketizer.get_output()], [bucketizer])
        prefix = 'revenue_bucketized_'

        assert [c for c in vector.column_names if c.startswith(prefix)] == [
            prefix + '[-1.0-0.0)', prefix + '[0.0-1.0)', prefix + '[1.0-Infinity)',
            prefix + 'OTHER', prefix + 'NullIndicatorValue',
        ]
        assert vector.data[prefix + 'OTHER'].tolist() == [0.0, 0.0, 0.0, 0.0, 1.0]
        assert vector.registry[prefix + '[0.0-1.0)'].parent_feature_names == ('revenue',)
        assert vector.lineage.structural_parent('revenue_bucketized') == 'revenue'

    def test_bucketizer_rejects_bad_splits(self):
        with pytest.raises(ValueError):
            NumericBucketizer([1.0, 0.0])
        with pytest.raises(SchemaError):
            NumericBucketizer([0.0, 1.0]).set_input(Feature.raw('c', FeatureType.PICKLIST))

    def test_unary_lambda_stage(self):
        data = pd.DataFrame({'amount': [0.0, 3.0, None]})
        amount = Feature.raw('amount', FeatureType.REAL)
        binner = UnaryLambdaTransformer(
            'binned', lambda v: 'null' if v is None else ('zero' if v == 0 else 'nonZero'), FeatureType.PICKLIST
        ).set_input(amount)

        vector = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit_transform(
            data, [amount, binner.get_output()], [binner]
        )

        assert vector.data['amount_binned_null'].tolist() == [0.0, 0.0, 1.0]
        assert vector.registry['amount_binned_zero'].parent_feature_names == ('amount_binned',)
        assert vector.lineage.structural_parent('amount_binned') is None

    def test_order_features_requires_parents(self):
        orphan = UnaryLambdaTransformer('f', str, FeatureType.TEXT).set_input(
            Feature.raw('x', FeatureType.REAL)
        ).get_output()

        with pytest.raises(SchemaError):
            order_features([orphan])

    def test_artifacts_round_trip(self, sample_data, features, tmp_path):
        vectorizer = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1)).fit(sample_data, features)
        vectorizer.set_save_path(str(tmp_path))
        document = vectorizer.to_json()

        restored = FeatureVectorizer(VectorizerConfig(MIN_SUPPORT=1))
        restored.load_artifacts(document['artifactPath'])

        assert restored.fill_values == vectorizer.fill_values
        assert list(restored.encoders['color'].categories_[0]) == ['red', 'blue', 'green']
