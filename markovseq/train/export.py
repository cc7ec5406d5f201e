"""
Inspection export of model parameters.

A model is written as the JSON document produced by ``to_dict()``, optionally
annotated with caller metadata. Documents are validated against
``MODEL_SCHEMA`` with jsonschema when they are read back.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema
import numpy as np

from ..exceptions import ModelExportError
from ..hmm.emissions import EMISSION_FAMILIES
from ..hmm.model import HiddenMarkovModel
from ..logger import get_logger

logger = get_logger(__name__)


_probability = {"type": "number", "minimum": 0.0, "maximum": 1.0}

MODEL_SCHEMA = {
    "type": "object",
    "required": ["n_states", "initial_distribution", "transition_matrix", "emissions"],
    "properties": {
        "n_states": {
            "type": "integer",
            "minimum": 1,
            "description": "Number of hidden states"
        },
        "initial_distribution": {
            "type": "array",
            "items": _probability,
            "minItems": 1
        },
        "transition_matrix": {
            "type": "array",
            "items": {"type": "array", "items": _probability, "minItems": 1},
            "minItems": 1
        },
        "emissions": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["family"],
                "properties": {
                    "family": {"type": "string", "enum": sorted(EMISSION_FAMILIES)}
                }
            }
        },
        "metadata": {
            "type": "object",
            "description": "Caller annotations, ignored when the model is rebuilt"
        }
    }
}


class ModelExporter:
    """
    Writes models as JSON documents and reads them back.
    """

    def export_json(self,
                    model: HiddenMarkovModel,
                    path: Union[str, Path],
                    metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Write a model's parameters as a JSON document for inspection.

        Args:
            model: Model to export
            path: Destination file
            metadata: Extra information (e.g. training statistics)

        Returns:
            Path of the written document

        Raises:
            ModelExportError: If the file cannot be written
        """
        document = model.to_dict()
        annotations = self._prepare_metadata_for_serialization(metadata or {})
        annotations['exported_at'] = datetime.now().isoformat()
        document['metadata'] = annotations

        try:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
        except (OSError, TypeError) as e:
            raise ModelExportError(f"Failed to export model to {path}: {str(e)}")

        logger.debug(f"Exported model to: {path}")
        return str(path)

    def read_document(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Read and validate a model document without rebuilding the model.

        Raises:
            ModelExportError: If the file is missing, unreadable or fails
                schema validation
        """
        path = Path(path)
        if not path.exists():
            raise ModelExportError(f"Model document not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise ModelExportError(f"Invalid JSON in model document {path}: {str(e)}")

        try:
            jsonschema.validate(document, MODEL_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ModelExportError(f"Model document validation failed for {path}: {e.message}")

        return document

    def import_json(self, path: Union[str, Path]) -> HiddenMarkovModel:
        """
        Rebuild a model from its JSON document.

        Raises:
            ModelExportError: If the document is unreadable, fails schema
                validation or describes an invalid model
        """
        document = self.read_document(path)

        try:
            return HiddenMarkovModel.from_dict(document)
        except (KeyError, ValueError) as e:
            raise ModelExportError(f"Model document {path} describes an invalid model: {str(e)}")

    def _prepare_metadata_for_serialization(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Convert numpy values so the metadata can be written as JSON."""
        serializable = {}

        for key, value in metadata.items():
            if isinstance(value, np.ndarray):
                serializable[key] = value.tolist()
            elif isinstance(value, np.integer):
                serializable[key] = int(value)
            elif isinstance(value, np.floating):
                serializable[key] = float(value)
            elif isinstance(value, dict):
                serializable[key] = self._prepare_metadata_for_serialization(value)
            elif isinstance(value, list):
                serializable[key] = [
                    item.tolist() if isinstance(item, np.ndarray) else
                    int(item) if isinstance(item, np.integer) else
                    float(item) if isinstance(item, np.floating) else
                    item for item in value
                ]
            else:
                serializable[key] = value

        return serializable


def export_json(model: HiddenMarkovModel, path: Union[str, Path],
                metadata: Optional[Dict[str, Any]] = None) -> str:
    """Write a model as a JSON document."""
    return ModelExporter().export_json(model, path, metadata)


def import_json(path: Union[str, Path]) -> HiddenMarkovModel:
    """Rebuild a model from a JSON document."""
    return ModelExporter().import_json(path)
