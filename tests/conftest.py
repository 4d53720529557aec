"""Shared fixtures: small synthetic matrices and outcome tables."""
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def six_samples() -> list[str]:
    return [f"S{i}" for i in range(1, 7)]


@pytest.fixture
def e2e_matrix(six_samples) -> pd.DataFrame:
    """A tracks the outcome, B is constant, C runs against it."""
    a = np.array([0.5, 1.0, 1.5, 2.0, 2.5, 3.0])
    return pd.DataFrame(
        [a, np.full(6, 5.0), -a],
        index=["A", "B", "C"],
        columns=six_samples,
    )


@pytest.fixture
def e2e_outcome(six_samples) -> pd.Series:
    return pd.Series([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], index=six_samples, name="time")


@pytest.fixture
def survival_data() -> dict:
    rng = np.random.default_rng(7)
    n = 300
    samples = [f"P{i:03d}" for i in range(n)]
    x = rng.normal(size=n)
    t_event = rng.exponential(1.0 / np.exp(0.8 * x))
    t_cens = rng.exponential(2.0, size=n)
    time = np.minimum(t_event, t_cens)
    event = (t_event <= t_cens).astype(int)

    sparse = rng.normal(size=n)
    sparse[:60] = np.nan
    censored_only = np.where(event == 0, rng.normal(size=n), np.nan)

    matrix = pd.DataFrame(
        [x, rng.normal(size=n), np.ones(n), sparse, censored_only],
        index=["signal", "noise", "const", "sparse", "censored_only"],
        columns=samples,
    )
    return {
        "matrix": matrix,
        "time": pd.Series(time, index=samples),
        "event": pd.Series(event, index=samples),
    }


@pytest.fixture
def regression_data() -> dict:
    rng = np.random.default_rng(11)
    n = 40
    samples = [f"R{i:02d}" for i in range(n)]
    group = np.array(["ctrl"] * 20 + ["case"] * 20)
    x = rng.normal(size=n)
    y = 1.5 * x + 2.0 * (group == "case") + rng.normal(scale=0.5, size=n)

    with_gaps = x.copy()
    with_gaps[[0, 5, 9]] = np.nan
    too_sparse = np.full(n, np.nan)
    too_sparse[:2] = [1.0, 2.0]

    matrix = pd.DataFrame(
        [x, (group == "case").astype(float), with_gaps, too_sparse],
        index=["x", "group_copy", "with_gaps", "too_sparse"],
        columns=samples,
    )
    return {
        "matrix": matrix,
        "y": pd.Series(y, index=samples),
        "group": pd.Series(group, index=samples),
    }
