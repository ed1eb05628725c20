"""Result containers returned by learners and models."""
from __future__ import annotations

from typing import Any, List, NamedTuple, Optional, Sequence

import numpy as np


class TrainingResult(NamedTuple):
    """A trained model together with its normalized feature importances."""

    model: Any
    feature_importance: np.ndarray

    def get_model(self):
        return self.model

    def get_feature_importance(self) -> np.ndarray:
        return self.feature_importance


class PredictionResult:
    """Per-row predictions, with optional gradients and tree depths.

    Parameters
    ----------
    expected : sequence of float
        Predicted value for each input row.
    gradients : sequence of (ndarray or None), optional
        Gradient of the prediction with respect to the encoded inputs.  A row
        whose leaf model has no gradient carries None.
    depths : sequence of int, optional
        Number of internal nodes visited before reaching the leaf.
    """

    def __init__(self, expected: Sequence[float],
                 gradients: Optional[Sequence[Optional[np.ndarray]]] = None,
                 depths: Optional[Sequence[int]] = None):
        self._expected = np.asarray(expected, dtype=float)
        self._gradients = list(gradients) if gradients is not None else None
        self._depths = list(depths) if depths is not None else None

    def __len__(self) -> int:
        return int(self._expected.shape[0])

    def get_expected(self) -> np.ndarray:
        return self._expected

    def get_gradient(self) -> Optional[List[Optional[np.ndarray]]]:
        """Per-row gradients, or None when no row reached a leaf that has one."""
        if self._gradients is None or all(g is None for g in self._gradients):
            return None
        return self._gradients

    def get_depth(self) -> Optional[List[int]]:
        return self._depths
