# tests/conftest.py
import pytest
import pandas as pd
import numpy as np

from featureguard.config import SanityCheckerConfig, VectorizerConfig
from featureguard.features.vectorizer import FeatureVectorizer
from featureguard.sanity.checker import SanityChecker

CITIES = [f"City{i:02d}" for i in range(40)]
COUNTRIES = [f"Country{i:02d}" for i in range(30)]
PICKLIST_DOMAIN = list("ABCDEFGHI")


def choice_with_empty(rng, domain, n, probability_of_empty):
    values = np.array(rng.choice(domain, size=n), dtype=object)
    values[rng.random(n) < probability_of_empty] = None
    return values


def lognormal_with_empty(rng, n, probability_of_empty):
    values = rng.lognormal(mean=10.0, sigma=1.0, size=n)
    values[rng.random(n) < probability_of_empty] = np.nan
    return values


@pytest.fixture
def countries():
    """Country domain of the zoo frame"""
    return list(COUNTRIES)


@pytest.fixture
def make_zoo():
    """Builder for the city / country / picklist / currency frame"""
    def _make(city_empty=0.2, country_empty=0.2, picklist_empty=0.2, currency_empty=0.2, n=1000, seed=42):
        rng = np.random.default_rng(seed)
        return pd.DataFrame({
            'city': choice_with_empty(rng, CITIES, n, city_empty),
            'country': choice_with_empty(rng, COUNTRIES, n, country_empty),
            'picklist': choice_with_empty(rng, PICKLIST_DOMAIN, n, picklist_empty),
            'currency': lognormal_with_empty(rng, n, currency_empty),
        })
    return _make


@pytest.fixture
def revenue_data():
    """Binary flag, currency and an expected revenue that is null exactly when the flag is"""
    rng = np.random.default_rng(7)
    n = 1000
    binary = np.array(rng.random(n) < 0.5, dtype=object)
    binary[rng.random(n) < 0.3] = None
    currency = rng.lognormal(mean=10.0, sigma=1.0, size=n)
    expected_revenue = np.array([
        np.nan if b is None else (1.0 if b else 0.0) * c
        for b, c in zip(binary, currency)
    ])
    return pd.DataFrame({
        'binary': binary,
        'currency': currency,
        'expectedRevenue': expected_revenue,
    })


@pytest.fixture
def run_check():
    """Vectorize, fit the sanity checker and transform; returns (model, checked vector)"""
    def _run(data, features, label, label_feature=None, stages=(), **overrides):
        settings = {'CHECK_SAMPLE': 1.0, 'REMOVE_BAD_FEATURES': True}
        settings.update(overrides)
        vector = FeatureVectorizer(VectorizerConfig()).fit_transform(data, features, stages)
        model = SanityChecker(SanityCheckerConfig(**settings)).fit(vector, label, label_feature)
        return model, model.transform(vector)
    return _run
