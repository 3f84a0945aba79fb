"""
Flight delay classification: clean flight and weather records, join them,
balance and split, fit kNN / random forest / neural network classifiers,
tune the forest and the decision threshold, and explain predictions.
"""

from .config import Config, create_default_config, load_config
from .errors import (
    DegenerateTrainingFoldError,
    ExcessiveMissingnessError,
    InvalidPackedTimeError,
    MissingValuePolicyError,
    PipelineError,
    SchemaMismatchError,
    StageError,
)
from .models import MODEL_REGISTRY, create_classifier, load_classifier
from .pipeline import FlightDelayPipeline

__version__ = '0.1.0'
