# regtreepy/__init__.py
"""
regtreepy: regression decision trees with pluggable leaf models.

Exports:
    - RegressionTreeLearner, RegressionTree, TrainingResult
    - RegressionTreeRegressor (scikit-learn style)
    - ConstantMeanLearner, LinearRegressionLearner
    - RegressionSplitter, CategoricalEncoder
"""
from loguru import logger

from .encoders import CategoricalEncoder
from .exceptions import (
    EmptyTrainingSetError,
    FeatureTypeError,
    InvalidLabelTypeError,
    ModelFormatError,
    RegressionTreeError,
    UnseenCategoryError,
)
from .leaves import ConstantMeanLearner, LinearRegressionLearner
from .regressor import RegressionTreeRegressor
from .results import PredictionResult, TrainingResult
from .splits import CategoricalSplit, RealSplit, RegressionSplitter
from .tree import RegressionTree, RegressionTreeLearner

logger.disable(__name__)

__all__ = [
    "CategoricalEncoder",
    "CategoricalSplit",
    "ConstantMeanLearner",
    "EmptyTrainingSetError",
    "FeatureTypeError",
    "InvalidLabelTypeError",
    "LinearRegressionLearner",
    "ModelFormatError",
    "PredictionResult",
    "RealSplit",
    "RegressionSplitter",
    "RegressionTree",
    "RegressionTreeError",
    "RegressionTreeLearner",
    "RegressionTreeRegressor",
    "TrainingResult",
    "UnseenCategoryError",
]
__version__ = "0.1.0"
