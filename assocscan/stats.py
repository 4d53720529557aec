from __future__ import annotations

from dataclasses import asdict
from typing import Sequence

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import fdrcorrection, multipletests

from assocscan.results import AdjustedResult, RegressionResult

METHODS = ("fdr_bh", "bonferroni", "holm")


def adjust(pvalues: Sequence[float | None] | np.ndarray, method: str = "fdr_bh") -> np.ndarray:
    """
    Multiple-testing adjustment aligned index-for-index with the input.

    Undefined inputs (None/NaN) are left out of the family size and come back as NaN.
    BH sorts with a stable sort, so equal p-values keep their original order.
    """
    if method not in METHODS:
        raise ValueError(f"unknown correction method {method!r}; choose from {METHODS}")
    p = pd.to_numeric(pd.Series(list(pvalues), dtype=object), errors="coerce").to_numpy(dtype=float)
    out = np.full(p.shape, np.nan, dtype=float)
    ok = np.isfinite(p)
    if not ok.any():
        return out
    if np.any((p[ok] < 0) | (p[ok] > 1)):
        raise ValueError("p-values must lie in [0, 1]")

    defined = p[ok]
    if method == "fdr_bh":
        order = np.argsort(defined, kind="mergesort")
        _, q_sorted = fdrcorrection(defined[order], alpha=0.05, method="indep", is_sorted=True)
        q = np.empty_like(defined)
        q[order] = q_sorted
    else:
        _, q, _, _ = multipletests(defined, alpha=0.05, method=method)
    out[ok] = np.clip(q, 0.0, 1.0)
    return out


def adjust_log(log_pvalues: Sequence[float] | np.ndarray, method: str = "fdr_bh") -> np.ndarray:
    """
    `adjust` on natural-log p-values, returning log q.

    Used where raw p-values underflow to 0.0 (extreme enrichment tails): the step-up and
    step-down bounds are carried as log p + log(n / rank) so distinct tails keep distinct q.
    """
    if method not in METHODS:
        raise ValueError(f"unknown correction method {method!r}; choose from {METHODS}")
    lp = np.asarray(log_pvalues, dtype=float)
    n = lp.size
    if n == 0:
        return np.array([], dtype=float)
    if np.any(np.isnan(lp)) or np.any(lp > 0):
        raise ValueError("log p-values must be defined and <= 0")

    if method == "bonferroni":
        return np.minimum(lp + np.log(n), 0.0)

    order = np.argsort(lp, kind="mergesort")
    ranks = np.arange(1, n + 1, dtype=float)
    if method == "fdr_bh":
        steps = lp[order] + np.log(n) - np.log(ranks)
        steps = np.minimum.accumulate(steps[::-1])[::-1]
    else:
        steps = lp[order] + np.log(n - ranks + 1)
        steps = np.maximum.accumulate(steps)
    out = np.empty(n, dtype=float)
    out[order] = np.minimum(steps, 0.0)
    return out


def fdr_bh(pvalues: Sequence[float | None] | np.ndarray) -> np.ndarray:
    return adjust(pvalues, "fdr_bh")


def adjust_results(results: Sequence[RegressionResult], method: str = "fdr_bh") -> tuple[AdjustedResult, ...]:
    q = adjust([r.p for r in results], method)
    out = []
    for r, qi in zip(results, q):
        base = {k: v for k, v in asdict(r).items() if k != "q"}
        out.append(AdjustedResult(**base, q=float(qi) if np.isfinite(qi) else None))
    return tuple(out)
