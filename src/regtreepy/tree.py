"""Regression tree induction.

The :class:`RegressionTreeLearner` validates and encodes raw rows, drops
rows with non-positive weight and hands the rest to a root
:class:`TrainingNode`.  Training nodes partition their subset recursively
until a stopping rule fires, then export a lightweight prediction tree
(:class:`InternalNode` / :class:`LeafNode`) that keeps no training data.

Feature importance is the impurity (weighted SSE) removed by each split,
summed per feature over the whole tree and normalized to 1.  Leaves whose
model carries its own importance vector (e.g. linear leaves) contribute that
vector as-is, so a depth-zero tree reports exactly its leaf model's
importances.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .encoders import CategoricalEncoder, Encoders, encode_row, encode_training_data
from .exceptions import ModelFormatError
from .leaves import ConstantMeanLearner, LeafLearner, LeafModel
from .results import PredictionResult, TrainingResult
from .splits import RegressionSplitter, Split, _wsse

# ----------------------------- Prediction tree -----------------------------

class ModelNode:
    """Immutable node of a prediction tree."""

    def predict(self, x: np.ndarray) -> float:
        leaf, _ = self.find_leaf(x)
        return leaf.model.predict(x)

    def find_leaf(self, x: np.ndarray) -> Tuple["LeafNode", int]:
        """Walk down to the leaf for ``x``; also return the number of hops."""
        node = self
        depth = 0
        while isinstance(node, InternalNode):
            node = node.left if node.split.turn_left(x) else node.right
            depth += 1
        return node, depth

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ModelNode":
        kind = data.get("type") if isinstance(data, dict) else None
        if kind == "leaf":
            if "model" not in data:
                raise ModelFormatError("Leaf node without a model")
            return LeafNode(LeafModel.from_dict(data["model"]))
        if kind == "internal":
            try:
                split, left, right = data["split"], data["left"], data["right"]
            except KeyError as e:
                raise ModelFormatError(f"Internal node is missing {e}") from e
            return InternalNode(Split.from_dict(split),
                                ModelNode.from_dict(left),
                                ModelNode.from_dict(right))
        raise ModelFormatError(f"Unknown node type {kind!r}")


class InternalNode(ModelNode):
    __slots__ = ("split", "left", "right")

    def __init__(self, split: Split, left: ModelNode, right: ModelNode):
        self.split = split
        self.left = left
        self.right = right

    def to_dict(self):
        return {"type": "internal", "split": self.split.to_dict(),
                "left": self.left.to_dict(), "right": self.right.to_dict()}


class LeafNode(ModelNode):
    __slots__ = ("model",)

    def __init__(self, model: LeafModel):
        self.model = model

    def to_dict(self):
        return {"type": "leaf", "model": self.model.to_dict()}

# ----------------------------- Training nodes -----------------------------

class TrainingNode:
    """A node under construction that owns one weighted training subset.

    The node resolves exactly once, into either a leaf (fitted leaf model) or
    an internal node (split plus two child training nodes).  Resolution is
    guarded by a lock, so :meth:`get_node` and :meth:`get_feature_importance`
    always see the same split and children, even when called from different
    threads.

    Parameters
    ----------
    X, y, w : ndarray
        Encoded features, labels and positive weights of the subset.
    categorical : ndarray of bool
        Which columns of ``X`` hold category codes.
    remaining_depth : int or None
        Number of further splits allowed below this node; None is unbounded.
    min_leaf_instances : int
        Subsets of at most this many rows become leaves.
    splitter, leaf_learner
        Split search and leaf model strategies.
    """

    def __init__(self, X: np.ndarray, y: np.ndarray, w: np.ndarray, categorical: np.ndarray, *,
                 remaining_depth: Optional[int] = None,
                 min_leaf_instances: int = 1,
                 splitter: Any = None,
                 leaf_learner: Optional[LeafLearner] = None):
        if X.shape[0] < 1:
            raise ValueError("TrainingNode requires at least one row")
        self._X, self._y, self._w = X, y, w
        self.categorical = categorical
        self.n_features = int(X.shape[1])
        self.n_samples = int(X.shape[0])
        self.remaining_depth = remaining_depth
        self.min_leaf_instances = int(min_leaf_instances)
        self.splitter = splitter if splitter is not None else RegressionSplitter()
        self.leaf_learner = leaf_learner if leaf_learner is not None else ConstantMeanLearner()
        self.impurity = _wsse(y, w)

        self._lock = threading.Lock()
        self._resolved = False
        self.split: Optional[Split] = None
        self.left: Optional[TrainingNode] = None
        self.right: Optional[TrainingNode] = None
        self.leaf_model: Optional[LeafModel] = None
        self._importance: Optional[np.ndarray] = None

    @property
    def is_leaf(self) -> bool:
        self.resolve()
        return self.split is None

    def resolve(self) -> "TrainingNode":
        with self._lock:
            if not self._resolved:
                self._resolve()
                self._resolved = True
        return self

    def _resolve(self) -> None:
        X, y, w = self._X, self._y, self._w
        found = None
        if self.n_samples > self.min_leaf_instances and self.remaining_depth != 0:
            found = self.splitter.best_split(X, y, w, self.categorical)

        go_left = None
        if found is not None:
            go_left = np.asarray(found[0].mask(X), dtype=bool)
            if go_left.all() or not go_left.any():
                # a split that keeps every row on one side is no split
                go_left = None

        if go_left is None:
            self.leaf_model = self.leaf_learner.fit(X, y, w, self.categorical)
        else:
            self.split = found[0]
            self.left = self._child(go_left)
            self.right = self._child(~go_left)
            self.left.resolve()
            self.right.resolve()
        # subsets are only needed until the node is resolved
        self._X = self._y = self._w = None

    def _child(self, rows: np.ndarray) -> "TrainingNode":
        n = int(rows.sum())
        if n <= 1:
            depth: Optional[int] = 0
        elif self.remaining_depth is None:
            depth = None
        else:
            depth = self.remaining_depth - 1
        return TrainingNode(self._X[rows], self._y[rows], self._w[rows], self.categorical,
                            remaining_depth=depth,
                            min_leaf_instances=self.min_leaf_instances,
                            splitter=self.splitter,
                            leaf_learner=self.leaf_learner)

    def get_node(self) -> ModelNode:
        """Export the lightweight prediction node for the output tree."""
        self.resolve()
        if self.split is None:
            return LeafNode(self.leaf_model)
        return InternalNode(self.split, self.left.get_node(), self.right.get_node())

    def get_feature_importance(self) -> np.ndarray:
        """Impurity decrease per feature in this subtree (unnormalized)."""
        self.resolve()
        if self._importance is None:
            if self.split is None:
                native = getattr(self.leaf_model, "feature_importance", None)
                if native is not None:
                    imp = np.array(native, dtype=float)
                else:
                    imp = np.zeros(self.n_features, dtype=float)
            else:
                improvement = self.impurity - self.left.impurity - self.right.impurity
                imp = self.left.get_feature_importance() + self.right.get_feature_importance()
                imp[self.split.index] += improvement
            self._importance = imp
        return self._importance.copy()

# ----------------------------- Model -----------------------------

class RegressionTree:
    """Trained regression tree: encoders, prediction tree and importances."""

    def __init__(self, root: ModelNode, encoders: Encoders, importance: np.ndarray):
        self.root = root
        self.encoders: Encoders = list(encoders)
        self._importance = np.asarray(importance, dtype=float)

    @property
    def n_features(self) -> int:
        return len(self.encoders)

    def encode(self, feature_vector: Sequence[Any]) -> np.ndarray:
        return encode_row(feature_vector, self.encoders)

    def predict(self, feature_vector: Sequence[Any]) -> float:
        return self.root.predict(self.encode(feature_vector))

    def predict_batch(self, rows: Sequence[Sequence[Any]]) -> np.ndarray:
        return np.array([self.predict(r) for r in rows], dtype=float)

    def transform(self, rows: Sequence[Sequence[Any]]) -> PredictionResult:
        expected: List[float] = []
        gradients: List[Optional[np.ndarray]] = []
        depths: List[int] = []
        for i, row in enumerate(rows):
            x = encode_row(row, self.encoders, i)
            leaf, depth = self.root.find_leaf(x)
            expected.append(leaf.model.predict(x))
            gradients.append(leaf.model.gradient(x))
            depths.append(depth)
        return PredictionResult(expected, gradients, depths)

    def get_feature_importance(self) -> np.ndarray:
        return self._importance.copy()

    def iter_leaves(self) -> Iterator[Tuple[LeafNode, int]]:
        stack: List[Tuple[ModelNode, int]] = [(self.root, 0)]
        while stack:
            node, depth = stack.pop()
            if isinstance(node, InternalNode):
                stack.append((node.right, depth + 1))
                stack.append((node.left, depth + 1))
            else:
                yield node, depth

    @property
    def n_leaves(self) -> int:
        return sum(1 for _ in self.iter_leaves())

    @property
    def depth(self) -> int:
        return max(d for _, d in self.iter_leaves())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root.to_dict(),
            "encoders": [e.to_dict() if e is not None else None for e in self.encoders],
            "feature_importance": self._importance.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegressionTree":
        try:
            root = ModelNode.from_dict(data["root"])
            encoders = [CategoricalEncoder.from_dict(e) if e is not None else None
                        for e in data["encoders"]]
            importance = np.asarray(data["feature_importance"], dtype=float)
        except (KeyError, TypeError) as e:
            raise ModelFormatError(f"Malformed regression tree: {e}") from e
        if importance.shape != (len(encoders),):
            raise ModelFormatError("feature_importance length does not match the number of features")
        return cls(root, encoders, importance)

    def __repr__(self):
        return f"RegressionTree(n_features={self.n_features}, n_leaves={self.n_leaves}, depth={self.depth})"

# ----------------------------- Learner -----------------------------

class RegressionTreeLearner:
    """Learn a regression tree from raw ``(feature_vector, label)`` rows.

    Parameters
    ----------
    max_depth : int, optional
        Maximum number of splits on any root-to-leaf path.  None (default)
        leaves the depth unbounded; 0 yields a single leaf.
    min_leaf_instances : int, default=1
        Subsets with at most this many rows are not split further.
    leaf_learner : LeafLearner, optional
        Strategy for leaf models.  Defaults to :class:`ConstantMeanLearner`.
    splitter : object, optional
        Split search with a ``best_split(X, y, w, categorical)`` method.
        Defaults to :class:`RegressionSplitter`.
    strict_categories : bool, default=False
        If True, predicting on a category not seen in training raises
        :class:`UnseenCategoryError`; otherwise it is routed right at every
        categorical split.
    """

    def __init__(self, max_depth: Optional[int] = None, min_leaf_instances: int = 1,
                 leaf_learner: Optional[LeafLearner] = None, splitter: Any = None,
                 strict_categories: bool = False):
        if max_depth is not None:
            max_depth = int(max_depth)
            if max_depth < 0:
                raise ValueError("max_depth must be >= 0 or None")
        min_leaf_instances = int(min_leaf_instances)
        if min_leaf_instances < 1:
            raise ValueError("min_leaf_instances must be >= 1")
        self.max_depth = max_depth
        self.min_leaf_instances = min_leaf_instances
        self.leaf_learner = leaf_learner if leaf_learner is not None else ConstantMeanLearner()
        self.splitter = splitter if splitter is not None else RegressionSplitter()
        self.strict_categories = bool(strict_categories)

    def train(self, training_data: Sequence[Tuple[Sequence[Any], Any]],
              weights: Optional[Sequence[float]] = None) -> TrainingResult:
        """Train a tree.

        Parameters
        ----------
        training_data : sequence of (feature_vector, label)
            Feature vectors must be column-homogeneous; the type of each
            column is taken from the first row.
        weights : sequence of float, optional
            One weight per row, default 1.0.  Rows with weight <= 0 are
            dropped before training.

        Returns
        -------
        TrainingResult
            ``(model, feature_importance)``; the importances are finite and
            sum to 1, or are all zero when no split reduced the impurity.

        Raises
        ------
        InvalidLabelTypeError, EmptyTrainingSetError, FeatureTypeError
            On invalid input.  Errors raised by the splitter propagate as-is.
        """
        data = encode_training_data(training_data, weights, strict=self.strict_categories)
        logger.debug(
            "Training regression tree on {} rows ({} dropped), {} features ({} categorical)",
            data.X.shape[0], data.n_dropped, data.X.shape[1], int(data.categorical.sum()),
        )
        root = TrainingNode(data.X, data.y, data.w, data.categorical,
                            remaining_depth=self.max_depth,
                            min_leaf_instances=self.min_leaf_instances,
                            splitter=self.splitter,
                            leaf_learner=self.leaf_learner)
        model_root = root.get_node()
        importance = root.get_feature_importance()

        total = float(importance.sum())
        if total > 0.0:
            importance = importance / total
        else:
            importance = np.zeros_like(importance)
        model = RegressionTree(model_root, data.encoders, importance)
        logger.opt(lazy=True).debug("Trained regression tree with {} leaves, depth {}",
                                    lambda: model.n_leaves, lambda: model.depth)
        return TrainingResult(model, importance.copy())
