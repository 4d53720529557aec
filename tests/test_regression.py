from __future__ import annotations

import threading

import numpy as np
import pandas as pd
import pytest

from assocscan.config import ScanConfig
from assocscan.errors import InputMismatch
from assocscan.outcome import CATEGORICAL, Covariate
from assocscan.ranking import rank, threshold
from assocscan.regression import scan
from assocscan.stats import adjust_results


def test_end_to_end_three_features(e2e_matrix, e2e_outcome):
    res = scan(e2e_outcome, e2e_matrix)
    by_id = {r.feature: r for r in res}

    assert [r.feature for r in res] == ["A", "B", "C"]
    assert by_id["A"].slope > 0 and by_id["A"].p < 1e-8
    assert by_id["C"].slope < 0 and by_id["C"].p < 1e-8
    assert by_id["B"].slope is None and by_id["B"].p is None
    assert by_id["B"].failure == "singular_fit"
    assert res.failures == {"singular_fit": 1}
    assert not res.interrupted

    adjusted = adjust_results(res.results)
    assert [r.feature for r in rank(adjusted, "p")][:2] == ["A", "C"]
    assert threshold(res.results, 1.0, "absolute").ids == {"A", "C"}


def test_constant_feature_never_selected(e2e_matrix, e2e_outcome):
    res = scan(e2e_outcome, e2e_matrix)
    for direction in ("positive", "negative", "absolute"):
        assert "B" not in threshold(res.results, 0.0, direction)


def test_small_scale_feature_is_fitted():
    rng = np.random.default_rng(3)
    samples = [f"T{i:02d}" for i in range(20)]
    x = rng.normal(size=20) * 1e-7
    y = pd.Series(1e7 * x + rng.normal(scale=0.1, size=20), index=samples)
    matrix = pd.DataFrame([x, np.full(20, 1e-7)], index=["tiny", "tiny_const"], columns=samples)

    by_id = {r.feature: r for r in scan(y, matrix)}
    assert by_id["tiny"].failure is None
    assert by_id["tiny"].slope == pytest.approx(1e7, rel=0.1)
    assert by_id["tiny"].p < 1e-8
    assert by_id["tiny_const"].failure == "singular_fit"
    assert "tiny" in threshold(list(by_id.values()), 1e6, "positive")


def test_scan_is_deterministic_and_thread_count_invariant(regression_data):
    d = regression_data
    serial = scan(d["y"], d["matrix"])
    again = scan(d["y"], d["matrix"])
    threaded = scan(d["y"], d["matrix"], config=ScanConfig(n_jobs=2))
    assert serial.results == again.results
    assert serial.results == threaded.results


def test_categorical_covariate_adjustment(regression_data):
    d = regression_data
    group = Covariate("group", d["group"], kind=CATEGORICAL, levels=("ctrl", "case"))
    res = scan(d["y"], d["matrix"], [group])
    by_id = {r.feature: r for r in res}

    assert by_id["x"].slope == pytest.approx(1.5, abs=0.3)
    assert by_id["x"].n_obs == 40
    # The feature duplicates the group dummy: collinear design.
    assert by_id["group_copy"].failure == "singular_fit"


def test_complete_case_per_feature(regression_data):
    d = regression_data
    res = scan(d["y"], d["matrix"])
    by_id = {r.feature: r for r in res}
    assert by_id["with_gaps"].n_obs == 37
    assert by_id["x"].n_obs == 40
    assert by_id["too_sparse"].failure == "insufficient_data"
    assert by_id["too_sparse"].slope is None
    assert res.failures["insufficient_data"] == 1


def test_values_outside_declared_levels_are_dropped(regression_data):
    d = regression_data
    group = d["group"].copy()
    group.iloc[:4] = "unknown"
    cov = Covariate("group", group, kind=CATEGORICAL, levels=("ctrl", "case"))
    res = scan(d["y"], d["matrix"], [cov])
    assert {r.feature: r for r in res}["x"].n_obs == 36


def test_outcome_mismatch_is_fatal(e2e_matrix, e2e_outcome):
    with pytest.raises(InputMismatch) as exc:
        scan(e2e_outcome.drop("S3"), e2e_matrix)
    assert exc.value.ids == ["S3"]


def test_duplicate_feature_ids_are_fatal(e2e_matrix, e2e_outcome):
    m = e2e_matrix.copy()
    m.index = ["A", "A", "C"]
    with pytest.raises(InputMismatch) as exc:
        scan(e2e_outcome, m)
    assert exc.value.ids == ["A"]


def test_logit_scan():
    rng = np.random.default_rng(3)
    n = 200
    samples = [f"L{i}" for i in range(n)]
    x = rng.normal(size=n)
    y = (rng.uniform(size=n) < 1.0 / (1.0 + np.exp(-1.2 * x))).astype(int)
    m = pd.DataFrame([x, rng.normal(size=n)], index=["x", "noise"], columns=samples)

    res = scan(pd.Series(y, index=samples), m, config=ScanConfig(model="logit"))
    by_id = {r.feature: r for r in res}
    assert by_id["x"].slope > 0.5
    assert by_id["x"].p < 1e-4


def test_logit_requires_binary_outcome(e2e_matrix, e2e_outcome):
    with pytest.raises(ValueError):
        scan(e2e_outcome, e2e_matrix, config=ScanConfig(model="logit"))


def test_timeout_returns_partial_results(e2e_matrix, e2e_outcome):
    res = scan(e2e_outcome, e2e_matrix, config=ScanConfig(timeout=0.0))
    assert res.interrupted
    assert len(res) == 0
    assert res.n_features == 3


def test_cancel_event_interrupts(e2e_matrix, e2e_outcome):
    cancel = threading.Event()
    cancel.set()
    res = scan(e2e_outcome, e2e_matrix, config=ScanConfig(n_jobs=2), cancel=cancel)
    assert res.interrupted
    assert len(res) == 0


def test_to_frame_keeps_order_and_columns(e2e_matrix, e2e_outcome):
    df = scan(e2e_outcome, e2e_matrix).to_frame()
    assert df["feature"].tolist() == ["A", "B", "C"]
    assert list(df.columns) == ["feature", "slope", "p", "se", "n_obs", "failure"]
    assert np.isnan(df.loc[1, "slope"])
