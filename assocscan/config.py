from __future__ import annotations

from dataclasses import dataclass


class AnnotationCategories:
    BP = "BP"
    MF = "MF"
    CC = "CC"
    KEGG = "KEGG"
    REACTOME = "REACTOME"
    HALLMARK = "HALLMARK"

    # Filter value only; never a term's own category.
    ALL = "ALL"

    TERM_CATEGORIES = frozenset({BP, MF, CC, KEGG, REACTOME, HALLMARK})
    FILTERS = TERM_CATEGORIES | {ALL}


@dataclass(frozen=True)
class ScanConfig:
    """
    Numeric-tolerance and execution settings shared by the per-feature scanners.

    model: "ols" or "logit" for `regression.scan`; ignored by `survival.scan_survival`.
    ties: "efron" (lifelines) or "breslow" (statsmodels PHReg) for Cox fits.
    timeout: whole-run budget in seconds; None disables it.
    """

    model: str = "ols"
    ties: str = "efron"
    penalizer: float = 0.0
    standardize: bool = False
    min_samples: int = 3
    min_events: int = 1
    constant_rtol: float = 1e-12
    n_jobs: int = 1
    timeout: float | None = None
    show_progress: bool = False


@dataclass(frozen=True)
class EnrichmentConfig:
    correction: str = "fdr_bh"
    min_term_size: int = 1
    max_term_size: int | None = None
    timeout: float | None = None


@dataclass(frozen=True)
class PipelineParams:
    """
    Cutoffs for deriving a foreground from scan results and filtering enriched terms.

    effect_threshold / direction feed `ranking.threshold` on the slope (log hazard ratio
    for survival scans); max_q optionally restricts the foreground to BH-significant features.
    """

    effect_threshold: float = 1.0
    direction: str = "absolute"
    max_q: float | None = None
    category: str = AnnotationCategories.ALL
    p_threshold: float = 0.05
    q_threshold: float = 0.25
    correction: str = "fdr_bh"
