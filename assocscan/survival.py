from __future__ import annotations

import threading
import warnings
from typing import Sequence

import numpy as np
import pandas as pd
from lifelines import CoxPHFitter
from lifelines.exceptions import ConvergenceError, ConvergenceWarning, StatisticalWarning
from statsmodels.duration.hazard_regression import PHReg

from assocscan.config import ScanConfig
from assocscan.errors import InsufficientData, SingularFit
from assocscan.outcome import Covariate, base_design
from assocscan.regression import FEATURE_COL, check_feature, scan_features, standardize_feature
from assocscan.results import RegressionResult, ScanResult

TIME_COL = "_time"
EVENT_COL = "_event"

TIES = ("efron", "breslow")


def _fit_lifelines(df: pd.DataFrame, cfg: ScanConfig) -> tuple[float, float, float]:
    cph = CoxPHFitter(penalizer=cfg.penalizer)
    try:
        cph.fit(df, duration_col=TIME_COL, event_col=EVENT_COL)
    except (ConvergenceError, np.linalg.LinAlgError) as e:
        raise SingularFit(str(e)) from e
    summ = cph.summary
    if FEATURE_COL not in summ.index:
        raise SingularFit("feature term missing from fit")
    return (
        float(summ.loc[FEATURE_COL, "coef"]),
        float(summ.loc[FEATURE_COL, "se(coef)"]),
        float(summ.loc[FEATURE_COL, "p"]),
    )


def _fit_phreg(df: pd.DataFrame, covs: list[str]) -> tuple[float, float, float]:
    model = PHReg(
        df[TIME_COL].to_numpy(dtype=float),
        df[covs].to_numpy(dtype=float),
        status=df[EVENT_COL].to_numpy(dtype=float),
        ties="breslow",
    )
    try:
        res = model.fit()
    except np.linalg.LinAlgError as e:
        raise SingularFit(str(e)) from e
    i = covs.index(FEATURE_COL)
    return float(np.asarray(res.params)[i]), float(np.asarray(res.bse)[i]), float(np.asarray(res.pvalues)[i])


def _fit_cox(feature: str, df: pd.DataFrame, cfg: ScanConfig) -> RegressionResult:
    # No intercept in a Cox model: parameters = covariates + feature.
    covs = [c for c in df.columns if c not in {TIME_COL, EVENT_COL, FEATURE_COL}] + [FEATURE_COL]
    check_feature(df, n_params=len(covs), cfg=cfg)
    events = int(df[EVENT_COL].sum())
    if events < max(int(cfg.min_events), 1):
        raise InsufficientData(f"{events} events")
    if cfg.standardize:
        df = standardize_feature(df)

    arr = df[covs].to_numpy(dtype=float)
    if np.linalg.matrix_rank(arr - arr.mean(axis=0)) < len(covs):
        raise SingularFit("collinear design")

    df = df[[TIME_COL, EVENT_COL, *covs]]
    if cfg.ties == "breslow":
        coef, se, p = _fit_phreg(df, covs)
    else:
        coef, se, p = _fit_lifelines(df, cfg)
    if not np.isfinite(coef) or not np.isfinite(p):
        raise SingularFit("non-finite estimate")
    return RegressionResult(feature=feature, slope=coef, p=p, se=se, n_obs=int(df.shape[0]))


def scan_survival(
    time: pd.Series,
    event: pd.Series,
    matrix: pd.DataFrame,
    covariates: Sequence[Covariate] = (),
    *,
    config: ScanConfig | None = None,
    cancel: threading.Event | None = None,
) -> ScanResult:
    """
    Per-feature Cox proportional-hazards scan:
      h(t) ~ covariates + feature

    Returns one result per feature (slope = log hazard ratio) in matrix row order.
    Missing values are dropped per feature, not across the run.
    """
    cfg = config or ScanConfig()
    if cfg.ties not in TIES:
        raise ValueError(f"unknown tie method {cfg.ties!r}; choose from {TIES}")
    if cfg.ties == "breslow" and cfg.penalizer:
        raise ValueError("penalized fits are only available with ties='efron'")

    base = base_design(matrix, {TIME_COL: time, EVENT_COL: event}, covariates)
    t = base[TIME_COL].dropna()
    if (t < 0).any():
        raise ValueError(f"negative times for samples: {', '.join(map(str, t.index[t < 0][:10]))}")
    e = base[EVENT_COL].dropna()
    if not e.isin([0, 1]).all():
        raise ValueError("event indicator must be 0/1")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        warnings.simplefilter("ignore", StatisticalWarning)
        return scan_features(
            matrix, base, keep=[TIME_COL, EVENT_COL], fit=_fit_cox, model="cox", cfg=cfg, cancel=cancel
        )
