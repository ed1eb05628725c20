"""Leaf model strategies.

A leaf learner turns the training subset that reaches a leaf into a fitted
leaf model.  Two strategies ship with the package:

- :class:`ConstantMeanLearner` predicts the weighted mean of the labels.  It
  has no gradient and contributes nothing to feature importance.
- :class:`LinearRegressionLearner` fits a weighted linear model (ordinary or
  ridge least squares from scikit-learn) on the numeric columns.  It exposes
  its coefficients as the gradient and their normalized magnitudes as a
  native feature importance, which the tree passes through unchanged.

Fitted leaf models only hold plain numbers, never a reference to the
scikit-learn estimator, so prediction trees stay pure data.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from sklearn.linear_model import LinearRegression, Ridge

from .encoders import Encoders, encode_row, encode_training_data
from .exceptions import ModelFormatError
from .results import PredictionResult, TrainingResult
from .splits import _wmean

# ----------------------------- Leaf models -----------------------------

class LeafModel:
    """Prediction function stored in a leaf of the prediction tree."""

    feature_importance: Optional[np.ndarray] = None

    def predict(self, x: np.ndarray) -> float:
        raise NotImplementedError

    def gradient(self, x: np.ndarray) -> Optional[np.ndarray]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "LeafModel":
        kind = data.get("type")
        try:
            if kind == "mean":
                return MeanLeafModel(float(data["value"]))
            if kind == "linear":
                return LinearLeafModel(np.asarray(data["coefficients"], dtype=float),
                                       float(data["intercept"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ModelFormatError(f"Malformed leaf model: {data!r}") from e
        raise ModelFormatError(f"Unknown leaf model type {kind!r}")


class MeanLeafModel(LeafModel):
    __slots__ = ("value",)

    def __init__(self, value: float):
        self.value = float(value)

    def predict(self, x):
        return self.value

    def to_dict(self):
        return {"type": "mean", "value": self.value}

    def __repr__(self):
        return f"MeanLeafModel(value={self.value!r})"


class LinearLeafModel(LeafModel):
    """``predict(x) = coefficients . x + intercept``.

    Coefficients of categorical columns are zero, so category codes never
    influence the prediction.
    """

    __slots__ = ("coefficients", "intercept", "feature_importance")

    def __init__(self, coefficients: np.ndarray, intercept: float):
        self.coefficients = np.asarray(coefficients, dtype=float)
        self.intercept = float(intercept)
        self.feature_importance = _normalized_magnitudes(self.coefficients)

    def predict(self, x):
        return float(np.dot(self.coefficients, x) + self.intercept)

    def gradient(self, x):
        return self.coefficients.copy()

    def to_dict(self):
        return {"type": "linear", "coefficients": self.coefficients.tolist(),
                "intercept": self.intercept}

    def __repr__(self):
        return f"LinearLeafModel(n_features={self.coefficients.size}, intercept={self.intercept!r})"


def _normalized_magnitudes(beta: np.ndarray) -> np.ndarray:
    mag = np.abs(beta)
    total = float(mag.sum())
    if total > 0.0 and np.isfinite(total):
        return mag / total
    return np.zeros_like(mag)

# ----------------------------- Leaf learners -----------------------------

class LeafLearner:
    """Strategy that fits a :class:`LeafModel` on a weighted training subset."""

    def fit(self, X: np.ndarray, y: np.ndarray, w: np.ndarray,
            categorical: np.ndarray) -> LeafModel:
        raise NotImplementedError


class ConstantMeanLearner(LeafLearner):
    """Predict the weighted average label of the leaf."""

    def fit(self, X, y, w, categorical):
        return MeanLeafModel(_wmean(y, w))

    def __repr__(self):
        return "ConstantMeanLearner()"


class LinearRegressionLearner(LeafLearner):
    """Weighted linear regression on the numeric columns.

    Parameters
    ----------
    reg_param : float, optional
        Ridge penalty.  None or 0 fits ordinary least squares, which returns
        the minimum-norm solution on under-determined leaves.
    fit_intercept : bool, default=True
        Whether to fit an unpenalized intercept.
    """

    def __init__(self, reg_param: Optional[float] = None, fit_intercept: bool = True):
        if reg_param is not None and reg_param < 0:
            raise ValueError("reg_param must be non-negative")
        self.reg_param = None if reg_param is None else float(reg_param)
        self.fit_intercept = bool(fit_intercept)

    def _estimator(self):
        if not self.reg_param:
            return LinearRegression(fit_intercept=self.fit_intercept)
        return Ridge(alpha=self.reg_param, fit_intercept=self.fit_intercept)

    def fit(self, X, y, w, categorical):
        m = X.shape[1]
        numeric = ~np.asarray(categorical, dtype=bool)
        beta = np.zeros(m, dtype=float)
        if not numeric.any():
            intercept = _wmean(y, w) if self.fit_intercept else 0.0
            return LinearLeafModel(beta, intercept)
        est = self._estimator()
        est.fit(X[:, numeric], y, sample_weight=w)
        beta[numeric] = np.ravel(est.coef_)
        return LinearLeafModel(beta, float(np.ravel(est.intercept_)[0]) if self.fit_intercept else 0.0)

    def train(self, training_data: Sequence[Tuple[Sequence[Any], Any]],
              weights: Optional[Sequence[float]] = None) -> TrainingResult:
        """Fit directly on raw rows, using the same encoding as the tree learner."""
        data = encode_training_data(training_data, weights)
        leaf = self.fit(data.X, data.y, data.w, data.categorical)
        model = LinearRegressionModel(leaf, data.encoders)
        return TrainingResult(model, leaf.feature_importance.copy())

    def __repr__(self):
        return f"LinearRegressionLearner(reg_param={self.reg_param!r}, fit_intercept={self.fit_intercept})"


class LinearRegressionModel:
    """A stand-alone linear model over raw feature vectors."""

    def __init__(self, leaf: LinearLeafModel, encoders: Encoders):
        self.leaf = leaf
        self.encoders = list(encoders)

    def predict(self, feature_vector: Sequence[Any]) -> float:
        return self.leaf.predict(encode_row(feature_vector, self.encoders))

    def transform(self, rows: Sequence[Sequence[Any]]) -> PredictionResult:
        encoded = [encode_row(r, self.encoders, i) for i, r in enumerate(rows)]
        return PredictionResult([self.leaf.predict(x) for x in encoded],
                                [self.leaf.gradient(x) for x in encoded])

    def get_feature_importance(self) -> np.ndarray:
        return self.leaf.feature_importance.copy()
