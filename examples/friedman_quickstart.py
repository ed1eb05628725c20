import pandas as pd, numpy as np
from time import perf_counter
from regtreepy import LinearRegressionLearner, RegressionTreeLearner, RegressionTreeRegressor
from regtreepy.datasets import bin_training_data, make_training_data
from regtreepy.logging import enable_logging

# Friedman-Silverman data with the last column turned into 8 categories
rows = bin_training_data(make_training_data(1024, 12, noise=0.1, seed=0), input_bins=[(11, 8)])
df = pd.DataFrame([f for f, _ in rows], columns=[f"x{i}" for i in range(12)])
df["target"] = [label for _, label in rows]

y = df["target"].values
Xdf = df.drop(columns=["target"])
X = Xdf.values.astype(object)
feats = list(Xdf.columns)

with enable_logging(level="DEBUG"):
    t0 = perf_counter()
    result = RegressionTreeLearner().train(list(zip(X.tolist(), y.tolist())))
    print(f"train: {perf_counter()-t0:.3f} s")

print(pd.Series(result.feature_importance, index=feats).sort_values(ascending=False).round(4))

reg = RegressionTreeRegressor(max_depth=2, leaf_learner=LinearRegressionLearner(reg_param=1.0),
                              feature_names=feats)
reg.fit(X, y)
print(f"R^2 (depth 2, linear leaves): {reg.score(X, y):.4f}")
reg.print_tree()
for rule in reg.export_rules():
    print(rule)
print("depths:", np.bincount(reg.apply_depth(X)))
