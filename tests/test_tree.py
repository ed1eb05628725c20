import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from regtreepy import (
    EmptyTrainingSetError,
    FeatureTypeError,
    InvalidLabelTypeError,
    LinearRegressionLearner,
    RegressionSplitter,
    RegressionTreeLearner,
    UnseenCategoryError,
)
from regtreepy.datasets import bin_training_data, make_training_data
from regtreepy.splits import RealSplit, SplitResult
from regtreepy.tree import InternalNode, LeafNode, TrainingNode


def _friedman(n_rows=1024, n_cols=12, noise=0.1, seed=0):
    return make_training_data(n_rows, n_cols, noise=noise, seed=seed)


def _assert_memorized(model, data, tol=1e-9):
    output = model.transform([f for f, _ in data])
    expected = output.get_expected()
    labels = np.array([label for _, label in data])
    assert np.max(np.abs(expected - labels)) < tol
    return output


class CountingSplitter:
    """Delegates to RegressionSplitter and counts the calls."""

    def __init__(self):
        self.inner = RegressionSplitter()
        self.calls = 0
        self._lock = threading.Lock()

    def best_split(self, X, y, w, categorical):
        with self._lock:
            self.calls += 1
        return self.inner.best_split(X, y, w, categorical)


class OneSidedSplitter:
    """Always proposes a threshold above every value in column 0."""

    def best_split(self, X, y, w, categorical):
        return SplitResult(RealSplit(0, 1e9), 1.0)


class FailingSplitter:
    def best_split(self, X, y, w, categorical):
        raise RuntimeError("split search failed")


# ----------------------------- Degenerate inputs -----------------------------

def test_constant_data_has_finite_zero_importance():
    data = [([1.0] * 10, 2.0) for _ in range(100)]
    result = RegressionTreeLearner().train(data)
    importances = result.feature_importance
    assert importances.shape == (10,)
    assert np.all(np.isfinite(importances))
    assert np.all(importances == 0.0)
    assert result.model.predict([1.0] * 10) == pytest.approx(2.0)
    assert result.model.depth == 0


def test_constant_label_with_varied_features_is_a_leaf():
    # 0.1 is not exactly representable, so the centered SSE is not exactly zero
    data = [([float(i), float((7 * i) % 11)], 0.1) for i in range(30)]
    result = RegressionTreeLearner().train(data)
    assert isinstance(result.model.root, LeafNode)
    assert result.model.n_leaves == 1
    assert np.all(result.feature_importance == 0.0)
    assert result.model.predict([3.0, 4.0]) == pytest.approx(0.1)


def test_one_sided_split_becomes_a_leaf():
    data = [([0.0], 1.0), ([1.0], 2.0), ([2.0], 6.0)]
    result = RegressionTreeLearner(splitter=OneSidedSplitter()).train(data)
    assert isinstance(result.model.root, LeafNode)
    assert np.all(result.feature_importance == 0.0)
    assert result.model.predict([1.0]) == pytest.approx(3.0)


def test_single_row_is_a_leaf():
    result = RegressionTreeLearner().train([([0.5, "a"], 3.0)])
    assert isinstance(result.model.root, LeafNode)
    assert result.model.predict([0.5, "a"]) == 3.0
    assert np.all(result.feature_importance == 0.0)


# ----------------------------- Memorization -----------------------------

def test_simple_tree_memorizes_inputs():
    data = _friedman(n_rows=128, n_cols=5)
    result = RegressionTreeLearner().train(data)
    output = _assert_memorized(result.model, data)
    assert output.get_gradient() is None


def test_larger_tree_memorizes_and_finds_dominant_feature():
    data = _friedman()
    result = RegressionTreeLearner().train(data)
    output = _assert_memorized(result.model, data)
    assert output.get_gradient() is None
    depths = output.get_depth()
    assert all(3 <= d <= 30 for d in depths), f"depths range {min(depths)}..{max(depths)}"

    importances = result.feature_importance
    assert importances[1] == importances.max()
    assert abs(importances.sum() - 1.0) < 1e-9
    assert np.all(importances >= 0.0)


def test_categorical_column_is_memorized():
    data = bin_training_data(_friedman(), input_bins=[(0, 8)])
    result = RegressionTreeLearner().train(data)
    assert result.model.encoders[0] is not None
    assert all(e is None for e in result.model.encoders[1:])
    output = _assert_memorized(result.model, data)
    assert output.get_gradient() is None
    assert all(3 <= d <= 30 for d in output.get_depth())

    importances = result.feature_importance
    assert importances[1] == importances.max()


def test_categorical_only_features():
    data = [(["a"], 1.0), (["b"], 2.0), (["c"], 3.0), (["d"], 4.0)]
    result = RegressionTreeLearner().train(data)
    _assert_memorized(result.model, data)
    assert result.feature_importance.tolist() == [1.0]


# ----------------------------- Linear leaves -----------------------------

def test_linear_leaves_memorize_with_gradient():
    data = _friedman()
    learner = RegressionTreeLearner(leaf_learner=LinearRegressionLearner(reg_param=0.0),
                                    min_leaf_instances=2)
    result = learner.train(data)
    output = _assert_memorized(result.model, data, tol=1e-8)
    gradients = output.get_gradient()
    assert gradients is not None
    assert all(g is not None and g.shape == (12,) for g in gradients)
    assert all(2 <= d <= 30 for d in output.get_depth())

    importances = result.feature_importance
    assert importances[1] == importances.max()
    assert importances.min() > 0.0


def test_stump_with_linear_leaf_matches_linear_learner():
    data = bin_training_data(_friedman(seed=3), input_bins=[(11, 8)])
    linear = LinearRegressionLearner(reg_param=1.0)
    result = RegressionTreeLearner(leaf_learner=linear, max_depth=0).train(data)

    linear_importance = linear.train(data).get_feature_importance()
    importances = result.feature_importance

    assert importances[1] == importances.max()
    assert importances[-1] == 0.0
    assert np.allclose(importances, linear_importance, rtol=0.0, atol=1e-9)

    output = result.model.transform([f for f, _ in data])
    assert all(d == 0 for d in output.get_depth())
    assert output.get_gradient() is not None


def test_weighted_linear_stump_importances_are_non_negative():
    data = _friedman(n_rows=32, noise=100.0, seed=3)
    rng = np.random.default_rng(7)
    weights = rng.integers(0, 8, size=len(data)).astype(float)
    learner = RegressionTreeLearner(leaf_learner=LinearRegressionLearner(reg_param=1.0), max_depth=1)
    result = learner.train(data, weights=weights)
    importances = result.feature_importance
    assert np.all(np.isfinite(importances))
    assert np.all(importances >= 0.0)
    assert abs(importances.sum() - 1.0) < 1e-9


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_weighted_full_tree_importances_are_non_negative(seed):
    data = _friedman(n_rows=128, noise=0.1, seed=seed)
    rng = np.random.default_rng(seed)
    weights = rng.integers(0, 4, size=len(data)).astype(float)
    assert (weights == 0.0).any()
    result = RegressionTreeLearner().train(data, weights=weights)
    importances = result.feature_importance
    assert np.all(np.isfinite(importances))
    assert np.all(importances >= 0.0)
    assert importances.sum() == pytest.approx(1.0)


# ----------------------------- Stopping rules -----------------------------

def test_max_depth_bounds_every_path():
    data = _friedman(n_rows=200)
    result = RegressionTreeLearner(max_depth=2).train(data)
    assert result.model.depth <= 2
    assert result.model.n_leaves <= 4
    assert all(d <= 2 for d in result.model.transform([f for f, _ in data]).get_depth())


def test_max_depth_zero_predicts_weighted_mean():
    data = [([0.0], 1.0), ([1.0], 3.0), ([2.0], 5.0)]
    result = RegressionTreeLearner(max_depth=0).train(data, weights=[1.0, 1.0, 2.0])
    assert result.model.predict([7.0]) == pytest.approx((1.0 + 3.0 + 10.0) / 4.0)
    assert np.all(result.feature_importance == 0.0)


def test_min_leaf_instances_stops_small_nodes():
    data = _friedman(n_rows=64)
    result = RegressionTreeLearner(min_leaf_instances=64).train(data)
    assert isinstance(result.model.root, LeafNode)

    result = RegressionTreeLearner(min_leaf_instances=8).train(data)
    assert isinstance(result.model.root, InternalNode)
    assert result.model.n_leaves < 64


# ----------------------------- Weights -----------------------------

def test_non_positive_weights_drop_rows():
    data = [([0.0], 1.0), ([1.0], 100.0), ([2.0], 3.0)]
    result = RegressionTreeLearner(max_depth=0).train(data, weights=[1.0, 0.0, -2.0])
    assert result.model.predict([1.0]) == 1.0


def test_weights_of_wrong_length_raise():
    data = [([0.0], 1.0), ([1.0], 2.0)]
    with pytest.raises(ValueError):
        RegressionTreeLearner().train(data, weights=[1.0])


# ----------------------------- Errors -----------------------------

@pytest.mark.parametrize("label", ["1.0", None, True, (1.0,)])
def test_invalid_label_type(label):
    data = [([0.0], 1.0), ([1.0], label)]
    with pytest.raises(InvalidLabelTypeError) as info:
        RegressionTreeLearner().train(data)
    assert info.value.row == 1


def test_empty_training_set():
    with pytest.raises(EmptyTrainingSetError):
        RegressionTreeLearner().train([])
    with pytest.raises(EmptyTrainingSetError):
        RegressionTreeLearner().train([([0.0], 1.0), ([1.0], 2.0)], weights=[0.0, 0.0])


def test_mixed_column_type_raises():
    with pytest.raises(FeatureTypeError):
        RegressionTreeLearner().train([([0.0], 1.0), (["x"], 2.0)])


def test_splitter_failure_propagates():
    with pytest.raises(RuntimeError, match="split search failed"):
        RegressionTreeLearner(splitter=FailingSplitter()).train(_friedman(n_rows=10))


def test_invalid_config():
    with pytest.raises(ValueError):
        RegressionTreeLearner(max_depth=-1)
    with pytest.raises(ValueError):
        RegressionTreeLearner(min_leaf_instances=0)


# ----------------------------- Unseen categories -----------------------------

def test_unseen_category_routes_right():
    data = [(["a"], 1.0), (["b"], 1.0), (["c"], 5.0)]
    result = RegressionTreeLearner().train(data)
    root = result.model.root
    assert isinstance(root, InternalNode)
    node = root
    while isinstance(node, InternalNode):
        node = node.right
    assert result.model.predict(["zzz"]) == node.model.predict(None)


def test_unseen_category_strict_raises():
    data = [(["a"], 1.0), (["b"], 2.0)]
    model = RegressionTreeLearner(strict_categories=True).train(data).model
    assert model.predict(["a"]) == 1.0
    with pytest.raises(UnseenCategoryError):
        model.predict(["zzz"])


# ----------------------------- Training nodes -----------------------------

def _root_node(data, splitter, **kwargs):
    X = np.array([f for f, _ in data], dtype=float)
    y = np.array([label for _, label in data], dtype=float)
    w = np.ones(len(data))
    return TrainingNode(X, y, w, np.zeros(X.shape[1], dtype=bool), splitter=splitter, **kwargs)


def test_training_node_resolves_once():
    splitter = CountingSplitter()
    root = _root_node(_friedman(n_rows=50, n_cols=5), splitter)
    root.get_node()
    calls = splitter.calls
    assert calls > 0
    root.get_feature_importance()
    root.get_node()
    assert splitter.calls == calls


def test_training_node_resolution_is_thread_safe():
    splitter = CountingSplitter()
    root = _root_node(_friedman(n_rows=200, n_cols=5), splitter)
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda _: root.get_feature_importance(), range(8)))
    assert all(np.array_equal(results[0], r) for r in results)

    sequential = CountingSplitter()
    _root_node(_friedman(n_rows=200, n_cols=5), sequential).get_feature_importance()
    assert splitter.calls == sequential.calls


def test_internal_importance_is_impurity_decrease():
    data = [([0.0, 5.0], 0.0), ([1.0, 5.0], 0.0), ([2.0, 5.0], 4.0), ([3.0, 5.0], 4.0)]
    root = _root_node(data, RegressionSplitter())
    importance = root.get_feature_importance()
    assert importance[0] == pytest.approx(root.impurity - root.left.impurity - root.right.impurity)
    assert importance[0] == pytest.approx(16.0)
    assert importance[1] == 0.0


def test_depth_budget_counts_down():
    root = _root_node(_friedman(n_rows=40, n_cols=5), RegressionSplitter(), remaining_depth=3)
    assert not root.is_leaf
    assert root.left.remaining_depth in (0, 2)
    node = root.get_node()
    assert node.find_leaf(np.zeros(5))[1] <= 3
