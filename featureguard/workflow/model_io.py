# featureguard/workflow/model_io.py
"""
Workflow model persistence.

A fitted workflow is written as one JSON document, op-model.json, holding the
stage definitions and every feature in topological order. Stages that keep
fitted state outside the document implement ArtifactPathAware and receive
the directory where they may write it.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from featureguard.exceptions import SummaryDecodingError
from featureguard.features.feature_types import Feature
from featureguard.features.vectorizer import order_features
from featureguard.lineage.graph import LineageGraph
from featureguard.sanity.summary import SUMMARY_METADATA_KEY, SanityCheckerSummary

logger = logging.getLogger(__name__)

MODEL_FILE_NAME = "op-model.json"
STAGES_DIR_NAME = "stages"


class ModelField(str, Enum):
    """Top level keys of the workflow model document"""
    UID = "uid"
    RESULT_FEATURES_UIDS = "resultFeaturesUids"
    STAGES = "stages"
    ALL_FEATURES = "allFeatures"
    PARAMETERS = "parameters"


@runtime_checkable
class ArtifactPathAware(Protocol):
    """A stage that writes auxiliary artifacts next to the model document"""

    def set_save_path(self, path: str) -> Any:
        ...


class SerializableStage(Protocol):
    uid: str

    def to_json(self) -> Dict[str, Any]:
        ...


@dataclass
class WorkflowModel:
    uid: str
    stages: List[SerializableStage]
    result_features: List[Feature]
    features: List[Feature] = field(default_factory=list)
    parameters: Dict[str, Any] = field(default_factory=dict)

    def sorted_features(self) -> List[Feature]:
        """All features, parents before children"""
        graph = LineageGraph()
        for feature in order_features(list(self.features) + list(self.result_features)):
            graph.add_feature(feature)
        return graph.topological_order()


class WorkflowModelWriter:
    """Write a WorkflowModel to a directory"""

    def __init__(self, model: WorkflowModel):
        self.model = model

    def to_json(self, path: Optional[Path] = None) -> Dict[str, Any]:
        stages = []
        for stage in self.model.stages:
            if path is not None and isinstance(stage, ArtifactPathAware):
                stage.set_save_path(str(path / STAGES_DIR_NAME))
            stages.append(stage.to_json())

        return {
            ModelField.UID.value: self.model.uid,
            ModelField.RESULT_FEATURES_UIDS.value: [f.uid for f in self.model.result_features],
            ModelField.STAGES.value: stages,
            ModelField.ALL_FEATURES.value: [f.to_json() for f in self.model.sorted_features()],
            ModelField.PARAMETERS.value: self.model.parameters,
        }

    def write(self, path: str, overwrite: bool = True) -> Path:
        directory = Path(path)
        model_file = directory / MODEL_FILE_NAME
        if model_file.exists() and not overwrite:
            raise FileExistsError(f"Model already exists at {model_file}")
        directory.mkdir(parents=True, exist_ok=True)

        document = self.to_json(directory)
        with open(model_file, 'w') as f:
            json.dump(document, f, indent=2, default=str)

        logger.info(f"Saved workflow model with {len(document[ModelField.STAGES.value])} stages to {model_file}")
        return model_file


def read_model_document(path: str) -> Dict[str, Any]:
    """Load op-model.json from a model directory (or the file itself)"""
    model_file = Path(path)
    if model_file.is_dir():
        model_file = model_file / MODEL_FILE_NAME
    with open(model_file, 'r') as f:
        document = json.load(f)

    missing = [key.value for key in ModelField if key.value not in document]
    if missing:
        raise ValueError(f"Model document {model_file} is missing fields {missing}")
    return document


def find_summaries(stages: Iterable[Dict[str, Any]]) -> List[SanityCheckerSummary]:
    return [
        SanityCheckerSummary.from_metadata(stage[SUMMARY_METADATA_KEY])
        for stage in stages
        if SUMMARY_METADATA_KEY in stage
    ]


def load_summary(path: str) -> SanityCheckerSummary:
    """Recover the sanity checker summary from a saved workflow model"""
    document = read_model_document(path)
    summaries = find_summaries(document[ModelField.STAGES.value])
    if not summaries:
        raise SummaryDecodingError(f"No sanity checker stage found in {path}", field=SUMMARY_METADATA_KEY)
    return summaries[0]
