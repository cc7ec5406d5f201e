"""
Training module.

Baum-Welch re-estimation, a convergence-monitoring training loop and JSON
export of trained models.
"""

from .baum_welch import BaumWelchLearner, SufficientStatistics, iterate
from .trainer import HMMTrainer
from .export import ModelExporter, MODEL_SCHEMA, export_json, import_json

__all__ = [
    "BaumWelchLearner",
    "SufficientStatistics",
    "iterate",
    "HMMTrainer",
    "ModelExporter",
    "MODEL_SCHEMA",
    "export_json",
    "import_json",
]
