# featureguard/pipeline.py
from langgraph.graph import StateGraph
from typing import TypedDict, Optional, List, Dict, Any
import pandas as pd
from datetime import datetime
import logging

from featureguard.config import Config, get_config

logger = logging.getLogger(__name__)


class PipelineState(TypedDict, total=False):
    """State shared across all agents"""
    # Input
    data_path: str
    target_column: str
    project_name: str
    feature_types: Optional[Dict[str, str]]
    stages: Optional[List[Any]]

    # Data
    raw_data: Optional[pd.DataFrame]
    data_info: Optional[dict]
    validation_report: Optional[dict]

    # Features
    features: Optional[list]
    label_feature: Optional[Any]
    label: Optional[pd.Series]
    feature_vector: Optional[Any]
    vectorizer: Optional[Any]
    feature_report: Optional[dict]

    # Sanity check
    sanity_model: Optional[Any]
    checked_vector: Optional[Any]
    sanity_summary: Optional[dict]
    sanity_report: Optional[dict]
    model_path: Optional[str]

    # Workflow
    current_step: str
    next_action: str
    errors: List[str]
    execution_log: List[str]


class FeatureGuardPipeline:
    def __init__(self, config: Optional[Config] = None):
        """Initialize the feature pipeline"""
        self.config = config or get_config()

        issues = self.config.validate_config()
        if issues:
            logger.warning(f"Configuration issues: {issues}")

        # DataFrames in the state are not serializable by the checkpointer; compile without one
        self.graph = self._build_graph()
        self.compiled_graph = self.graph.compile()

        logger.info("Feature pipeline initialized successfully")

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow"""
        from featureguard.agents.data_agent import DataIngestionAgent
        from featureguard.agents.feature_agent import FeatureEngineeringAgent
        from featureguard.agents.sanity_agent import SanityCheckAgent

        # Initialize agents
        data_agent = DataIngestionAgent(self.config.data_validation)
        feature_agent = FeatureEngineeringAgent(self.config.vectorizer)
        sanity_agent = SanityCheckAgent(
            self.config.sanity_checker,
            self.config.mlflow,
            str(self.config.paths.MODELS_DIR)
        )

        workflow = StateGraph(PipelineState)

        workflow.add_node("data_ingestion", data_agent.process)
        workflow.add_node("data_validation", data_agent.validate)
        workflow.add_node("feature_engineering", feature_agent.engineer_features)
        workflow.add_node("sanity_check", sanity_agent.check)
        workflow.add_node("persist_model", sanity_agent.persist_model)

        workflow.set_entry_point("data_ingestion")

        workflow.add_conditional_edges(
            "data_ingestion",
            self._route_on_error,
            {"proceed": "data_validation", "error": "__end__"}
        )

        # Conditional: if validation fails, stop
        workflow.add_conditional_edges(
            "data_validation",
            self._route_after_validation,
            {"proceed": "feature_engineering", "error": "__end__"}
        )

        workflow.add_conditional_edges(
            "feature_engineering",
            self._route_on_error,
            {"proceed": "sanity_check", "error": "__end__"}
        )

        workflow.add_conditional_edges(
            "sanity_check",
            self._route_on_error,
            {"proceed": "persist_model", "error": "__end__"}
        )

        workflow.add_edge("persist_model", "__end__")

        return workflow

    def _route_after_validation(self, state: PipelineState) -> str:
        """Route based on data validation results"""
        validation_report = state.get("validation_report") or {}

        if state.get("next_action") != "error" and validation_report.get("is_valid", False):
            return "proceed"
        return "error"

    def _route_on_error(self, state: PipelineState) -> str:
        return "error" if state.get("next_action") == "error" else "proceed"

    async def run_pipeline(
        self,
        data_path: str,
        target_column: str,
        project_name: Optional[str] = None,
        feature_types: Optional[Dict[str, str]] = None,
        stages: Optional[List[Any]] = None
    ) -> dict:
        """Execute the complete feature pipeline"""

        if project_name is None:
            project_name = f"featureguard_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        initial_state = PipelineState(
            data_path=data_path,
            target_column=target_column,
            project_name=project_name,
            feature_types=feature_types or {},
            stages=stages or [],
            current_step="initialization",
            next_action="data_ingestion",
            errors=[],
            execution_log=[f"Pipeline started at {datetime.now()}"]
        )

        logger.info(f"Starting pipeline for project: {project_name}")

        try:
            final_state = await self.compiled_graph.ainvoke(initial_state)

            final_state["execution_log"].append(
                f"Pipeline completed at {datetime.now()}"
            )

            if final_state.get("errors"):
                logger.error(f"Pipeline finished with errors for {project_name}: {final_state['errors']}")
                final_state["status"] = "failed"
            else:
                logger.info(f"Pipeline completed successfully for {project_name}")
                final_state["status"] = "completed"
            return final_state

        except Exception as e:
            logger.error(f"Pipeline failed for {project_name}: {str(e)}")
            return {
                "status": "failed",
                "error": str(e),
                "project_name": project_name
            }
