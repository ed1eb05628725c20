"""scikit-learn style estimator around :class:`RegressionTreeLearner`.
This module adds ``fit``/``predict``, pretty printing and rule export on top
of the learner/model pair.
"""
from __future__ import annotations
from typing import Any, List, Optional

import numpy as np
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.utils.validation import check_is_fitted

from .leaves import LeafLearner, LeafModel, LinearLeafModel, MeanLeafModel
from .tree import InternalNode, ModelNode, RegressionTree, RegressionTreeLearner

# ----------------------------- Helpers -----------------------------

def _rows(X) -> List[List[Any]]:
    Xo = np.asarray(X, dtype=object)
    if Xo.ndim != 2:
        raise ValueError(f"Expected 2D array, got {Xo.ndim}D array instead")
    return [list(r) for r in Xo]

def _leaf_text(model: LeafModel) -> str:
    if isinstance(model, LinearLeafModel):
        return f"linear(intercept={model.intercept:.6g}, |coef|={np.abs(model.coefficients).sum():.6g})"
    if isinstance(model, MeanLeafModel):
        return f"value={model.value:.6g}"
    return repr(model)

# ----------------------------- Regressor -----------------------------

class RegressionTreeRegressor(RegressorMixin, BaseEstimator):
    r"""
    RegressionTreeRegressor(max_depth=None, min_leaf_instances=1, leaf_learner=None,
                            strict_categories=False, feature_names=None)

    A regression tree with a scikit-learn–style API.

    **Core behavior**

    - **Split criterion**: weighted **SSE reduction**. Numeric thresholds are midpoints
      between distinct sorted values; categorical columns (any column whose first value
      is not a real number) use subset splits found by ordering categories by mean label.
    - **Stopping**: a node becomes a leaf when it holds at most `min_leaf_instances`
      rows, when `max_depth` is exhausted, or when no split lowers the SSE.
    - **Leaves**: weighted mean by default; pass a `LinearRegressionLearner` as
      `leaf_learner` for linear leaves.
    - **Weights**: rows with `sample_weight <= 0` are ignored.

    Parameters
    ----------
    max_depth : int, optional
        Maximum depth of the tree.  None means unbounded.
    min_leaf_instances : int, default=1
        Nodes with at most this many rows are not split.
    leaf_learner : LeafLearner, optional
        Leaf model strategy.
    strict_categories : bool, default=False
        Raise on unseen categories at prediction time instead of routing them right.
    feature_names : sequence of str, optional
        Column names used in textual exports.

    Attributes
    ----------
    tree_ : RegressionTree
        The trained model.
    feature_importances_ : ndarray of shape (n_features,)
        Normalized impurity-decrease importances.
    n_features_in_ : int
        Number of features seen during fit.
    """

    def __init__(self,
                 max_depth: Optional[int] = None,
                 min_leaf_instances: int = 1,
                 leaf_learner: Optional[LeafLearner] = None,
                 strict_categories: bool = False,
                 feature_names: Optional[List[str]] = None):
        self.max_depth = max_depth
        self.min_leaf_instances = min_leaf_instances
        self.leaf_learner = leaf_learner
        self.strict_categories = strict_categories
        self.feature_names = feature_names

    # ----------------------------- Public API -----------------------------

    def fit(self, X, y, sample_weight: Optional[np.ndarray] = None):
        rows = _rows(X)
        y = np.asarray(y).reshape(-1)
        if len(rows) != y.shape[0]:
            raise ValueError("X and y must have the same number of rows")
        n_features = len(rows[0]) if rows else 0
        if self.feature_names is not None and len(self.feature_names) != n_features:
            raise ValueError("feature_names length must match X.shape[1]")

        learner = RegressionTreeLearner(max_depth=self.max_depth,
                                        min_leaf_instances=self.min_leaf_instances,
                                        leaf_learner=self.leaf_learner,
                                        strict_categories=self.strict_categories)
        result = learner.train(list(zip(rows, y.tolist())), weights=sample_weight)
        self.tree_: RegressionTree = result.model
        self.feature_importances_ = result.feature_importance
        self.n_features_in_ = n_features
        self.feature_names_ = list(self.feature_names) if self.feature_names is not None else None
        return self

    def predict(self, X):
        check_is_fitted(self, "tree_")
        return self.tree_.predict_batch(_rows(X))

    def apply_depth(self, X) -> np.ndarray:
        """Number of splits each row passes through before reaching its leaf."""
        check_is_fitted(self, "tree_")
        return np.asarray(self.tree_.transform(_rows(X)).get_depth(), dtype=int)

    # ----------------------------- Pretty / Rules -----------------------------

    def _maybe_feature_names(self, feature_names):
        return feature_names if feature_names is not None else getattr(self, "feature_names_", None)

    def _name(self, index: int, fn) -> str:
        return fn[index] if (fn is not None and 0 <= index < len(fn)) else f"X[{index}]"

    def _describe(self, node: InternalNode, fn, left: bool) -> str:
        enc = self.tree_.encoders[node.split.index]
        return node.split.describe(self._name(node.split.index, fn), enc, left=left)

    def print_tree(self, feature_names: Optional[List[str]] = None) -> None:
        """
        Pretty‑print the fitted regression tree to ``stdout``.

        Parameters
        ----------
        feature_names : list[str], optional
            Alternative names for the features.  Defaults to those provided at
            construction time.

        Raises
        ------
        NotFittedError
            If the estimator has not been fitted.
        """
        check_is_fitted(self, "tree_")
        fn = self._maybe_feature_names(feature_names)
        self._print_node(self.tree_.root, "", fn)

    def _print_node(self, node: ModelNode, indent="", fn=None):
        if not isinstance(node, InternalNode):
            print(f"{indent}Predict {_leaf_text(node.model)}")
            return
        print(f"{indent}if {self._describe(node, fn, True)}:")
        self._print_node(node.left, indent + "  ", fn)
        print(f"{indent}else:")
        self._print_node(node.right, indent + "  ", fn)

    def export_rules(self, feature_names: Optional[List[str]] = None) -> List[str]:
        """
        Export all decision rules in the fitted regression tree.

        Each rule describes a path from the root to a leaf, as a conjunction of
        conditions, followed by the leaf model.

        Returns
        -------
        list[str]
            Strings of the form ``"<antecedent> => value=<prediction>"``.
        """
        check_is_fitted(self, "tree_")
        fn = self._maybe_feature_names(feature_names)
        rules: List[str] = []
        self._collect_rules(self.tree_.root, [], rules, fn)
        return rules

    def _collect_rules(self, node: ModelNode, parts: List[str], rules: List[str], fn=None):
        if not isinstance(node, InternalNode):
            antecedent = " AND ".join(parts) if parts else "<root>"
            rules.append(f"{antecedent} => {_leaf_text(node.model)}")
            return
        self._collect_rules(node.left, parts + [self._describe(node, fn, True)], rules, fn)
        self._collect_rules(node.right, parts + [self._describe(node, fn, False)], rules, fn)

    def predict_rule(self, X, feature_names: Optional[List[str]] = None) -> List[str]:
        """Return the antecedent of the rule that fires for each row of ``X``."""
        check_is_fitted(self, "tree_")
        fn = self._maybe_feature_names(feature_names)
        out = []
        for row in _rows(X):
            x = self.tree_.encode(row)
            node, parts = self.tree_.root, []
            while isinstance(node, InternalNode):
                left = node.split.turn_left(x)
                parts.append(self._describe(node, fn, left))
                node = node.left if left else node.right
            out.append(" AND ".join(parts) if parts else "<root>")
        return out
