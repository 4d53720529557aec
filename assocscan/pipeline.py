from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import pandas as pd

from assocscan.annotations import AnnotationSource, CachedAnnotationSource
from assocscan.config import EnrichmentConfig, PipelineParams, ScanConfig
from assocscan.enrichment import test_enrichment
from assocscan.outcome import covariates_from_table, prepare_outcome_table, validate_alignment
from assocscan.ranking import select_significant, threshold
from assocscan.regression import scan
from assocscan.results import AdjustedResult, EnrichmentRun, GeneSet, ScanResult, results_to_frame
from assocscan.stats import adjust_results
from assocscan.survival import scan_survival


@dataclass(frozen=True)
class PipelineResult:
    scan: ScanResult
    adjusted: tuple[AdjustedResult, ...]
    foreground: GeneSet
    universe: GeneSet
    enrichment: EnrichmentRun | None

    @property
    def interrupted(self) -> bool:
        return self.scan.interrupted or bool(self.enrichment and self.enrichment.interrupted)

    def scan_frame(self) -> pd.DataFrame:
        return results_to_frame(self.adjusted)


def derive_foreground(adjusted: Sequence[AdjustedResult], params: PipelineParams) -> GeneSet:
    fg = threshold(adjusted, params.effect_threshold, params.direction, name="foreground")
    if params.max_q is not None:
        sig = select_significant(adjusted, params.max_q, adjusted=True)
        fg = GeneSet.of("foreground", fg.ids & sig.ids)
    return fg


def run_pipeline(
    *,
    matrix: pd.DataFrame,
    outcome: pd.DataFrame,
    time_col: str | None = None,
    event_col: str | None = None,
    response_col: str | None = None,
    covariates: Mapping[str, str | Sequence[object]] | None = None,
    annotations: AnnotationSource | None = None,
    params: PipelineParams | None = None,
    scan_config: ScanConfig | None = None,
    enrichment_config: EnrichmentConfig | None = None,
    universe: Iterable[str] | None = None,
    cancel: threading.Event | None = None,
) -> PipelineResult:
    """
    Feature matrix + outcome -> per-feature scan -> BH -> threshold -> enrichment.

    Survival scan when time_col/event_col are given, regression on response_col otherwise.
    The universe defaults to every feature in the matrix.
    """
    logger = logging.getLogger(__name__)
    params = params or PipelineParams()
    scan_config = scan_config or ScanConfig()
    survival_mode = time_col is not None or event_col is not None
    if survival_mode and (time_col is None or event_col is None):
        raise ValueError("survival scans need both time_col and event_col")
    if not survival_mode and response_col is None:
        raise ValueError("give either time_col/event_col or response_col")

    t0 = time.perf_counter()
    table = prepare_outcome_table(outcome, time_col=time_col, event_col=event_col)
    validate_alignment(matrix, pd.Index(table.index))
    covs = covariates_from_table(table, covariates or {})

    if survival_mode:
        res = scan_survival(table[time_col], table[event_col], matrix, covs, config=scan_config, cancel=cancel)
    else:
        res = scan(table[response_col], matrix, covs, config=scan_config, cancel=cancel)
    adjusted = adjust_results(res.results, params.correction)
    logger.info("scan finished (%.1fs): %d results, %d failed", time.perf_counter() - t0, len(res), res.n_failed)

    fg = derive_foreground(adjusted, params)
    u = GeneSet.of("universe", universe if universe is not None else matrix.index)
    logger.info("foreground: %d features (%s >= %g)", len(fg), params.direction, params.effect_threshold)

    enr: EnrichmentRun | None = None
    if annotations is not None:
        if res.interrupted:
            logger.warning("scan was interrupted; enrichment uses the partial foreground")
        source = annotations if isinstance(annotations, CachedAnnotationSource) else CachedAnnotationSource(annotations)
        enr = test_enrichment(
            fg,
            u,
            source,
            params.category,
            params.p_threshold,
            params.q_threshold,
            config=enrichment_config,
            cancel=cancel,
        )
    return PipelineResult(scan=res, adjusted=adjusted, foreground=fg, universe=u, enrichment=enr)
