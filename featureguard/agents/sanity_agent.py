# featureguard/agents/sanity_agent.py
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional
import logging

import mlflow

from featureguard.config import MLFlowConfig, SanityCheckerConfig, get_config
from featureguard.sanity.checker import SanityChecker, SanityCheckerModel
from featureguard.utils.logging_config import PipelineLogger
from featureguard.workflow.model_io import WorkflowModel, WorkflowModelWriter

logger = logging.getLogger(__name__)


class SanityCheckAgent:
    """Agent responsible for leakage detection, feature pruning and model persistence"""

    def __init__(
        self,
        config: Optional[SanityCheckerConfig] = None,
        mlflow_config: Optional[MLFlowConfig] = None,
        models_dir: Optional[str] = None
    ):
        global_config = get_config()
        self.config = config or global_config.sanity_checker
        self.mlflow_config = mlflow_config or global_config.mlflow
        self.models_dir = Path(models_dir) if models_dir else global_config.paths.MODELS_DIR

    async def check(self, state: dict) -> dict:
        """Run the sanity checker on the feature vector"""
        logger.info("Starting sanity check")

        try:
            with PipelineLogger("sanity_check", logger) as step:
                checker = SanityChecker(self.config)
                vector = state['feature_vector']
                step.log_progress(f"Fitting on '{vector.name}' with {len(vector.column_names)} columns")
                model = checker.fit(vector, state['label'], state.get('label_feature'))
                checked_vector = model.transform(vector)

                summary = model.summary
                step.log_metric("checked_columns", len(summary.names))
                step.log_metric("dropped_columns", len(summary.dropped))
                step.log_metric("cramers_v_columns", len(summary.categorical_stats.categorical_features))
                step.log_metric("sample_fraction", summary.feature_statistics.sample_fraction)

                run_id = None
                if self.mlflow_config.ENABLED:
                    run_id = self._log_to_mlflow(state.get('project_name', 'featureguard'), model, step.metrics)

            state.update({
                'sanity_model': model,
                'checked_vector': checked_vector,
                'sanity_summary': summary.to_metadata(),
                'sanity_report': {
                    'checked': len(summary.names),
                    'dropped': list(summary.dropped),
                    'drop_reasons': {c: list(r) for c, r in summary.drop_reasons.items()},
                    'label_is_categorical': summary.label_context.is_categorical,
                    'metrics': dict(step.metrics),
                    'mlflow_run_id': run_id
                },
                'current_step': 'sanity_check',
                'next_action': 'persist_model'
            })

            state['execution_log'].append(
                f"Sanity check completed: {len(summary.dropped)} of {len(summary.names)} columns flagged"
            )

            return state

        except Exception as e:
            logger.error(f"Sanity check failed: {str(e)}")
            state['errors'].append(f"Sanity check error: {str(e)}")
            state['next_action'] = 'error'
            return state

    def _log_to_mlflow(self, project_name: str, model: SanityCheckerModel, metrics: Dict[str, float]) -> str:
        """Log parameters, counts and the summary document to MLflow"""
        mlflow.set_tracking_uri(self.mlflow_config.TRACKING_URI)
        mlflow.set_experiment(self.mlflow_config.EXPERIMENT_NAME)

        summary = model.summary
        with mlflow.start_run(run_name=f"{project_name}_sanity_check_{datetime.now().strftime('%Y%m%d_%H%M%S')}"):
            mlflow.log_params(model.config.to_params())
            mlflow.log_metrics(metrics)
            mlflow.log_dict(summary.to_metadata(), "sanity_checker_summary.json")
            return mlflow.active_run().info.run_id

    async def persist_model(self, state: dict) -> dict:
        """Write the fitted stages and features as op-model.json"""
        logger.info("Persisting workflow model")

        try:
            model: SanityCheckerModel = state['sanity_model']
            vectorizer = state['vectorizer']
            project_name = state.get('project_name', 'featureguard')

            stages = list(vectorizer.stages) + [vectorizer, model]
            features = vectorizer.lineage_features() + [state['label_feature'], vectorizer.get_output()]

            workflow_model = WorkflowModel(
                uid=f"{project_name}_{model.uid}",
                stages=stages,
                result_features=[model.get_output()],
                features=features,
                parameters={
                    'projectName': project_name,
                    'targetColumn': state['target_column'],
                    'sanityChecker': model.config.to_params(),
                }
            )
            model_path = WorkflowModelWriter(workflow_model).write(str(self.models_dir / project_name))

            state.update({
                'model_path': str(model_path),
                'current_step': 'persist_model',
                'next_action': 'completed'
            })

            state['execution_log'].append(f"Workflow model saved to {model_path}")

            return state

        except Exception as e:
            logger.error(f"Model persistence failed: {str(e)}")
            state['errors'].append(f"Model persistence error: {str(e)}")
            state['next_action'] = 'error'
            return state
