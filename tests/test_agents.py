# tests/test_agents.py
from unittest.mock import MagicMock, patch

import pytest
import pandas as pd
import numpy as np

from featureguard.agents.data_agent import DataIngestionAgent
from featureguard.agents.feature_agent import FeatureEngineeringAgent
from featureguard.agents.sanity_agent import SanityCheckAgent
from featureguard.config import Config, MLFlowConfig, SanityCheckerConfig, VectorizerConfig
from featureguard.features.feature_types import FeatureType
from featureguard.pipeline import FeatureGuardPipeline
from featureguard.workflow.model_io import load_summary


@pytest.fixture
def churn_data():
    """Customer frame whose 'plan_code' column restates the churn label"""
    rng = np.random.default_rng(5)
    n = 400
    churn = rng.choice(['yes', 'no'], size=n)
    return pd.DataFrame({
        'age': rng.normal(40, 10, size=n).round(1),
        'region': rng.choice(['north', 'south', 'east', 'west'], size=n),
        'plan_code': np.where(churn == 'yes', 'P-CANCEL', 'P-ACTIVE'),
        'churn': churn,
    })


@pytest.fixture
def csv_path(churn_data, tmp_path):
    path = tmp_path / "churn.csv"
    churn_data.to_csv(path, index=False)
    return str(path)


def new_state(**kwargs):
    state = {'errors': [], 'execution_log': []}
    state.update(kwargs)
    return state


class TestDataIngestionAgent:

    @pytest.mark.asyncio
    async def test_load_csv(self, csv_path):
        agent = DataIngestionAgent(Config().data_validation)
        result = await agent.process(new_state(data_path=csv_path))

        assert result['next_action'] == 'data_validation'
        assert result['raw_data'].shape == (400, 4)
        assert result['data_info']['columns'] == ['age', 'region', 'plan_code', 'churn']

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        agent = DataIngestionAgent(Config().data_validation)
        result = await agent.process(new_state(data_path=str(tmp_path / "absent.csv")))

        assert result['next_action'] == 'error'
        assert 'Data ingestion error' in result['errors'][0]

    @pytest.mark.asyncio
    async def test_unsupported_format(self, tmp_path):
        path = tmp_path / "data.xlsx"
        path.write_text("a,b\n1,2\n")
        agent = DataIngestionAgent(Config().data_validation)
        result = await agent.process(new_state(data_path=str(path)))

        assert result['next_action'] == 'error'

    @pytest.mark.asyncio
    async def test_validation_passes(self, churn_data):
        agent = DataIngestionAgent(Config().data_validation)
        result = await agent.validate(new_state(raw_data=churn_data, target_column='churn'))

        assert result['validation_report']['is_valid']
        assert result['next_action'] == 'proceed'

    @pytest.mark.asyncio
    async def test_validation_fails_without_target(self, churn_data):
        agent = DataIngestionAgent(Config().data_validation)
        result = await agent.validate(new_state(raw_data=churn_data, target_column='missing'))

        report = result['validation_report']
        assert not report['is_valid']
        assert result['next_action'] == 'error'
        assert report['recommendations']
        assert result['errors']

    @pytest.mark.asyncio
    async def test_validation_fails_on_missing_labels(self, churn_data):
        data = churn_data.copy()
        data.loc[:100, 'churn'] = None
        agent = DataIngestionAgent(Config().data_validation)
        result = await agent.validate(new_state(raw_data=data, target_column='churn'))

        checks = {r['check']: r for r in result['validation_report']['results']}
        assert not checks['target_variable']['passed']


class TestFeatureEngineeringAgent:

    def test_type_inference(self):
        data = pd.DataFrame({
            'flag': [True, False, True],
            'count': [1, 2, 3],
            'ratio': [0.1, 0.2, np.nan],
            'color': ['red', None, 'blue'],
            'tags': [['a'], ['b', 'c'], None],
            'scores': [{'x': 1}, {'y': 2}, {}],
            'when': pd.date_range('2024-01-01', periods=3),
            'target': [0, 1, 0],
        })
        features = {f.name: f for f in FeatureEngineeringAgent(VectorizerConfig()).infer_features(data, 'target')}

        assert features['flag'].ftype is FeatureType.BINARY
        assert features['count'].ftype is FeatureType.INTEGRAL
        assert features['ratio'].ftype is FeatureType.REAL
        assert features['color'].ftype is FeatureType.PICKLIST
        assert features['tags'].ftype is FeatureType.MULTI_PICKLIST
        assert features['scores'].ftype is FeatureType.INTEGRAL_MAP
        assert 'when' not in features
        assert features['target'].is_response

    def test_high_cardinality_text(self):
        data = pd.DataFrame({'note': [f"note {i}" for i in range(50)], 'target': [0, 1] * 25})
        agent = FeatureEngineeringAgent(VectorizerConfig(MAX_PICKLIST_CARDINALITY=10))

        features = {f.name: f for f in agent.infer_features(data, 'target')}

        assert features['note'].ftype is FeatureType.TEXT

    def test_overrides_take_precedence(self, churn_data):
        agent = FeatureEngineeringAgent(VectorizerConfig())
        features = {f.name: f for f in agent.infer_features(churn_data, 'churn', {'region': 'City'})}

        assert features['region'].ftype is FeatureType.CITY

    @pytest.mark.asyncio
    async def test_engineer_features(self, churn_data):
        agent = FeatureEngineeringAgent(VectorizerConfig())
        result = await agent.engineer_features(new_state(raw_data=churn_data, target_column='churn'))

        assert result['next_action'] == 'sanity_check'
        assert result['label_feature'].name == 'churn'
        assert 'plan_code_P-CANCEL' in result['feature_vector'].column_names
        assert not any(c.startswith('churn') for c in result['feature_vector'].column_names)
        assert result['feature_report']['raw_features']['age'] == FeatureType.REAL.value

    @pytest.mark.asyncio
    async def test_engineer_features_missing_target(self, churn_data):
        agent = FeatureEngineeringAgent(VectorizerConfig())
        result = await agent.engineer_features(new_state(raw_data=churn_data, target_column='absent'))

        assert result['next_action'] == 'error'


class TestSanityCheckAgent:

    @pytest.mark.asyncio
    async def test_check_flags_leaking_column(self, churn_data, tmp_path):
        state = await FeatureEngineeringAgent(VectorizerConfig()).engineer_features(
            new_state(raw_data=churn_data, target_column='churn', project_name='churn')
        )
        agent = SanityCheckAgent(
            SanityCheckerConfig(REMOVE_BAD_FEATURES=True),
            MLFlowConfig(ENABLED=False, TRACKING_URI='', EXPERIMENT_NAME='test'),
            str(tmp_path)
        )

        result = await agent.check(state)

        dropped = result['sanity_report']['dropped']
        assert result['next_action'] == 'persist_model'
        reasons = result['sanity_report']['drop_reasons']
        leaking = [c for c in dropped if not reasons[c][0].startswith('variance')]
        assert leaking and all(c.startswith('plan_code') for c in leaking)
        assert 'plan_code_P-CANCEL' in dropped
        assert not any(c.startswith('plan_code') for c in result['checked_vector'].column_names)

        persisted = await agent.persist_model(result)

        assert persisted['next_action'] == 'completed'
        assert load_summary(persisted['model_path']).dropped == tuple(dropped)

    @pytest.mark.asyncio
    async def test_check_logs_to_mlflow(self, churn_data, tmp_path):
        state = await FeatureEngineeringAgent(VectorizerConfig()).engineer_features(
            new_state(raw_data=churn_data, target_column='churn', project_name='churn')
        )
        agent = SanityCheckAgent(
            SanityCheckerConfig(),
            MLFlowConfig(ENABLED=True, TRACKING_URI='file:///tmp/mlruns', EXPERIMENT_NAME='test'),
            str(tmp_path)
        )

        with patch('featureguard.agents.sanity_agent.mlflow') as mock_mlflow:
            mock_mlflow.active_run.return_value = MagicMock(info=MagicMock(run_id='run-1'))
            result = await agent.check(state)

        assert result['sanity_report']['mlflow_run_id'] == 'run-1'
        mock_mlflow.set_experiment.assert_called_once_with('test')
        mock_mlflow.log_dict.assert_called_once()
        logged = mock_mlflow.log_metrics.call_args[0][0]
        assert logged == result['sanity_report']['metrics']
        assert logged['checked_columns'] == len(result['sanity_summary']['names'])

    @pytest.mark.asyncio
    async def test_check_reports_errors(self, tmp_path):
        agent = SanityCheckAgent(
            SanityCheckerConfig(),
            MLFlowConfig(ENABLED=False, TRACKING_URI='', EXPERIMENT_NAME='test'),
            str(tmp_path)
        )
        result = await agent.check(new_state(feature_vector=None, label=None))

        assert result['next_action'] == 'error'
        assert 'Sanity check error' in result['errors'][0]


class TestFeatureGuardPipeline:

    @pytest.fixture
    def config(self, tmp_path):
        config = Config()
        config.paths.MODELS_DIR = tmp_path / "models"
        config.mlflow.ENABLED = False
        config.sanity_checker.REMOVE_BAD_FEATURES = True
        return config

    @pytest.mark.asyncio
    async def test_full_pipeline(self, config, csv_path, tmp_path):
        pipeline = FeatureGuardPipeline(config)
        result = await pipeline.run_pipeline(csv_path, 'churn', project_name='churn_check')

        assert result['status'] == 'completed'
        assert result['errors'] == []
        assert result['model_path'].startswith(str(tmp_path / "models" / "churn_check"))
        assert 'plan_code_P-CANCEL' in result['sanity_report']['dropped']
        assert 'region_north' not in result['sanity_report']['dropped']

    @pytest.mark.asyncio
    async def test_pipeline_stops_on_invalid_data(self, config, csv_path):
        pipeline = FeatureGuardPipeline(config)
        result = await pipeline.run_pipeline(csv_path, 'not_a_column', project_name='bad')

        assert result['status'] == 'failed'
        assert 'sanity_report' not in result

    @pytest.mark.asyncio
    async def test_pipeline_stops_on_missing_file(self, config, tmp_path):
        pipeline = FeatureGuardPipeline(config)
        result = await pipeline.run_pipeline(str(tmp_path / "nothing.csv"), 'churn', project_name='none')

        assert result['status'] == 'failed'
        assert result['errors']
