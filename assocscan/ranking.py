from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from assocscan.results import GeneSet, RegressionResult

AXES = ("slope", "abs_slope", "p", "q")
DIRECTIONS = ("positive", "negative", "absolute")


def _metric(r: RegressionResult, name: str) -> float:
    v = getattr(r, name, None)
    if v is None:
        return float("nan")
    v = float(v)
    return v if np.isfinite(v) else float("nan")


def _table(results: Iterable[RegressionResult], metric: str) -> pd.DataFrame:
    rows = [(r.feature, _metric(r, metric)) for r in results]
    return pd.DataFrame(rows, columns=["feature", "value"])


def rank(results: Sequence[RegressionResult], by: str = "slope") -> list[RegressionResult]:
    """
    Order results by signed effect (descending), effect magnitude (descending),
    or p/q-value (ascending). Undefined metrics go last; ties break on feature id.
    """
    if by not in AXES:
        raise ValueError(f"unknown ranking axis {by!r}; choose from {AXES}")
    results = list(results)
    d = _table(results, "slope" if by == "abs_slope" else by)
    d["pos"] = np.arange(len(results))
    if by == "abs_slope":
        d["value"] = d["value"].abs()
    ascending = by in {"p", "q"}
    d = d.sort_values(["value", "feature"], ascending=[ascending, True], na_position="last", kind="mergesort")
    return [results[i] for i in d["pos"].to_numpy()]


def rank_series(results: Sequence[RegressionResult], by: str = "slope") -> pd.Series:
    """
    Prerank-style Series (index=feature, value=metric) in rank order, undefined values dropped.
    """
    metric = "slope" if by == "abs_slope" else by
    ordered = [r for r in rank(results, by) if np.isfinite(_metric(r, metric))]
    vals = [_metric(r, metric) for r in ordered]
    if by == "abs_slope":
        vals = [abs(v) for v in vals]
    return pd.Series(vals, index=[r.feature for r in ordered], name=by, dtype=float)


def threshold(
    results: Sequence[RegressionResult],
    value: float,
    direction: str,
    *,
    metric: str = "slope",
    name: str | None = None,
) -> GeneSet:
    """
    Select feature ids by a signed cutoff on `metric`:
      negative: metric <= -|value|
      positive: metric >= |value|
      absolute: |metric| >= |value|

    Undefined metrics are never selected.
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"unknown direction {direction!r}; choose from {DIRECTIONS}")
    cutoff = abs(float(value))
    if not np.isfinite(cutoff):
        raise ValueError("threshold value must be finite")

    d = _table(results, metric).dropna(subset=["value"])
    if direction == "negative":
        keep = d["value"] <= -cutoff
    elif direction == "positive":
        keep = d["value"] >= cutoff
    else:
        # Absolute value computed per row, so ids stay attached to their own metric.
        keep = d["value"].abs() >= cutoff
    label = name or f"{metric}_{direction}_{cutoff:g}"
    return GeneSet.of(label, d.loc[keep, "feature"])


def select_significant(
    results: Sequence[RegressionResult], alpha: float, *, adjusted: bool = True, name: str | None = None
) -> GeneSet:
    metric = "q" if adjusted else "p"
    d = _table(results, metric).dropna(subset=["value"])
    return GeneSet.of(name or f"{metric}_le_{alpha:g}", d.loc[d["value"] <= float(alpha), "feature"])
