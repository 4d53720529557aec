from __future__ import annotations

import logging
import threading
import warnings
from collections import Counter
from typing import Callable, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import ConvergenceWarning, PerfectSeparationError

from assocscan.batch import run_batch
from assocscan.config import ScanConfig
from assocscan.errors import FitError, InsufficientData, SingularFit
from assocscan.outcome import Covariate, base_design
from assocscan.results import FitFailure, RegressionResult, ScanResult

FEATURE_COL = "_feature"
RESPONSE_COL = "_response"

FitFn = Callable[[str, pd.DataFrame, ScanConfig], RegressionResult]


def feature_frame(base: pd.DataFrame, x: np.ndarray, *, keep: Sequence[str]) -> pd.DataFrame:
    """
    Complete-case frame for one feature: base columns + the feature column, rows with any
    missing value dropped. Covariate columns that became constant are removed; `keep` columns
    (response/time/event) and the feature are never dropped here.
    """
    df = base.copy()
    df[FEATURE_COL] = x
    df = df.dropna()
    protected = set(keep) | {FEATURE_COL}
    for c in list(df.columns):
        if c in protected:
            continue
        if df[c].nunique(dropna=True) <= 1:
            df = df.drop(columns=[c])
    return df


def check_feature(df: pd.DataFrame, *, n_params: int, cfg: ScanConfig) -> None:
    n = int(df.shape[0])
    if n < cfg.min_samples or n <= n_params:
        raise InsufficientData(f"{n} complete observations for {n_params} parameters")
    x = df[FEATURE_COL].to_numpy(dtype=float)
    # Relative to the feature's own scale: small-unit measurements are not constant.
    if float(np.ptp(x)) <= cfg.constant_rtol * max(1.0, float(np.abs(x).max())):
        raise SingularFit("constant feature")


def standardize_feature(df: pd.DataFrame) -> pd.DataFrame:
    x = df[FEATURE_COL]
    df = df.copy()
    df[FEATURE_COL] = (x - x.mean()) / x.std(ddof=0)
    return df


def _fit_linear(feature: str, df: pd.DataFrame, cfg: ScanConfig) -> RegressionResult:
    X = sm.add_constant(df.drop(columns=[RESPONSE_COL]), has_constant="add")
    # Feature goes last so the design reads outcome ~ 1 + covariates + feature.
    X = X[[c for c in X.columns if c != FEATURE_COL] + [FEATURE_COL]]
    y = df[RESPONSE_COL]
    check_feature(df, n_params=int(X.shape[1]), cfg=cfg)
    if cfg.standardize:
        X[FEATURE_COL] = standardize_feature(df)[FEATURE_COL]

    arr = X.to_numpy(dtype=float)
    if np.linalg.matrix_rank(arr) < arr.shape[1]:
        raise SingularFit("collinear design")

    try:
        if cfg.model == "logit":
            fit = sm.Logit(y, X).fit(disp=0)
            if not fit.mle_retvals.get("converged", True):
                raise SingularFit("logistic fit did not converge")
            pred = np.asarray(fit.predict(X), dtype=float)
            if np.all((pred < 1e-8) | (pred > 1.0 - 1e-8)):
                raise SingularFit("perfect separation")
        else:
            fit = sm.OLS(y, X).fit()
    except (np.linalg.LinAlgError, PerfectSeparationError) as e:
        raise SingularFit(str(e)) from e

    coef = float(fit.params[FEATURE_COL])
    p = float(fit.pvalues[FEATURE_COL])
    se = float(fit.bse[FEATURE_COL])
    if not np.isfinite(coef) or not np.isfinite(p):
        raise SingularFit("non-finite estimate")
    return RegressionResult(feature=feature, slope=coef, p=p, se=se, n_obs=int(df.shape[0]))


def scan_features(
    matrix: pd.DataFrame,
    base: pd.DataFrame,
    *,
    keep: Sequence[str],
    fit: FitFn,
    model: str,
    cfg: ScanConfig,
    cancel: threading.Event | None = None,
) -> ScanResult:
    """
    Run `fit` once per matrix row against the shared base frame.

    Each fit returns a result or an explicit FitFailure; failures become undefined results
    in place so output order always matches input order.
    """
    logger = logging.getLogger(__name__)
    features = [str(f) for f in matrix.index]
    values = matrix.apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)

    def fit_one(i: int) -> RegressionResult | FitFailure:
        feature = features[i]
        df = feature_frame(base, values[i], keep=keep)
        try:
            return fit(feature, df, cfg)
        except FitError as e:
            return FitFailure(feature=feature, reason=e.reason, message=str(e), n_obs=int(df.shape[0]))

    logger.info("%s scan: %d features x %d samples", model, len(features), matrix.shape[1])
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        warnings.simplefilter("ignore", ConvergenceWarning)
        outcome = run_batch(
            fit_one,
            list(range(len(features))),
            n_jobs=cfg.n_jobs,
            timeout=cfg.timeout,
            cancel=cancel,
            desc=f"{model} scan",
            show_progress=cfg.show_progress,
        )

    failures: Counter[str] = Counter()
    results: list[RegressionResult] = []
    for r in outcome.results:
        if isinstance(r, FitFailure):
            failures[r.reason] += 1
            logger.debug("%s: %s (%s)", r.feature, r.reason, r.message)
            results.append(r.as_result())
        else:
            results.append(r)

    if failures:
        logger.warning(
            "%s scan: %d/%d features failed (%s)",
            model,
            sum(failures.values()),
            len(results),
            ", ".join(f"{k}={v}" for k, v in sorted(failures.items())),
        )
    logger.info("%s scan done: %d results%s", model, len(results), " (interrupted)" if outcome.interrupted else "")
    return ScanResult(
        results=tuple(results),
        model=model,
        n_features=len(features),
        interrupted=outcome.interrupted,
        failures=dict(sorted(failures.items())),
    )


def scan(
    outcome: pd.Series,
    matrix: pd.DataFrame,
    covariates: Sequence[Covariate] = (),
    *,
    config: ScanConfig | None = None,
    cancel: threading.Event | None = None,
) -> ScanResult:
    """
    Per-feature regression: outcome ~ 1 + covariates + feature.

    matrix: rows=features, cols=samples
    outcome: Series indexed by sample id (continuous for "ols", 0/1 for "logit")
    """
    cfg = config or ScanConfig()
    if cfg.model not in {"ols", "logit"}:
        raise ValueError(f"unknown regression model {cfg.model!r}")

    base = base_design(matrix, {RESPONSE_COL: outcome}, covariates)
    if cfg.model == "logit":
        y = base[RESPONSE_COL].dropna()
        if not y.isin([0, 1]).all():
            raise ValueError("logit scan requires a 0/1 outcome")

    return scan_features(matrix, base, keep=[RESPONSE_COL], fit=_fit_linear, model=cfg.model, cfg=cfg, cancel=cancel)
