from __future__ import annotations

import logging
import math
import threading
from typing import Iterable, Sequence

import numpy as np
from scipy.special import logsumexp
from scipy.stats import hypergeom

from assocscan.annotations import AnnotationSource, check_category, matches_category
from assocscan.batch import Deadline
from assocscan.config import EnrichmentConfig
from assocscan.errors import UniverseViolation
from assocscan.results import AnnotationTerm, EnrichmentResult, EnrichmentRun, GeneSet
from assocscan.stats import METHODS, adjust_log

_P_FLOOR = float(np.finfo(float).tiny)


def hypergeom_log_sf(k: int, population: int, successes: int, draws: int) -> float:
    """
    log P(X >= k) for X ~ Hypergeometric(population, successes, draws).

    Summed in log space over the upper tail so extreme enrichment keeps a finite log p
    instead of underflowing to p = 0.
    """
    lo = max(0, draws - (population - successes))
    hi = min(successes, draws)
    if k <= lo:
        return 0.0
    if k > hi:
        return -math.inf
    ks = np.arange(k, hi + 1)
    return float(min(0.0, logsumexp(hypergeom.logpmf(ks, population, successes, draws))))


def _log_cutoff(threshold: float) -> float:
    return math.log(threshold) if threshold > 0 else -math.inf


def _floored_exp(log_x: float) -> float:
    # p/q below the smallest normal double are reported at that floor; log_p/log_q keep the value.
    return max(math.exp(log_x), _P_FLOOR)


def _as_ids(x: GeneSet | Iterable[object]) -> frozenset[str]:
    if isinstance(x, GeneSet):
        return x.ids
    return frozenset(str(i) for i in x)


def _resolve_terms(
    terms: Sequence[AnnotationTerm] | AnnotationSource, category: str, universe: frozenset[str]
) -> list[AnnotationTerm]:
    if hasattr(terms, "lookup_terms"):
        out = list(terms.lookup_terms(category, sorted(universe)))
    else:
        out = list(terms)
    seen: set[str] = set()
    dups: set[str] = set()
    for t in out:
        if t.term_id in seen:
            dups.add(t.term_id)
        seen.add(t.term_id)
    if dups:
        raise ValueError(f"duplicate term ids: {', '.join(sorted(dups)[:10])}")
    return out


def test_enrichment(
    foreground: GeneSet | Iterable[str],
    universe: GeneSet | Iterable[str],
    terms: Sequence[AnnotationTerm] | AnnotationSource,
    category: str,
    p_threshold: float = 0.05,
    q_threshold: float = 0.2,
    *,
    config: EnrichmentConfig | None = None,
    cancel: threading.Event | None = None,
) -> EnrichmentRun:
    """
    Over-representation analysis of `foreground` against `universe`, one-sided
    hypergeometric test per annotation term, corrected across all tested terms.

    Terms are tested when they match `category` and intersect the universe (zero-overlap
    terms included). Retained terms satisfy p <= p_threshold and q <= q_threshold and are
    ordered by q, then overlap (descending), then term id.
    """
    logger = logging.getLogger(__name__)
    cfg = config or EnrichmentConfig()
    check_category(category)
    if cfg.correction not in METHODS:
        raise ValueError(f"unknown correction method {cfg.correction!r}; choose from {METHODS}")

    fg = _as_ids(foreground)
    u = _as_ids(universe)
    outside = fg - u
    if outside:
        raise UniverseViolation(outside)

    candidates = _resolve_terms(terms, category, u)

    population = len(u)
    draws = len(fg)
    deadline = Deadline(cfg.timeout, cancel)
    interrupted = False
    tested: list[tuple[AnnotationTerm, frozenset[str], int, float]] = []
    for term in candidates:
        if not matches_category(term, category):
            continue
        in_u = term.features & u
        size = len(in_u)
        if size == 0 or size < cfg.min_term_size:
            continue
        if cfg.max_term_size is not None and size > cfg.max_term_size:
            continue
        if deadline.expired():
            interrupted = True
            break
        hits = in_u & fg
        tested.append((term, hits, size, hypergeom_log_sf(len(hits), population, size, draws)))

    if interrupted:
        logger.warning("enrichment interrupted after %d terms", len(tested))

    log_ps = np.array([t[3] for t in tested], dtype=float)
    log_qs = adjust_log(log_ps, cfg.correction)
    log_p_cut = _log_cutoff(p_threshold)
    log_q_cut = _log_cutoff(q_threshold)

    kept: list[EnrichmentResult] = []
    for (term, hits, size, log_p), log_q in zip(tested, log_qs):
        if log_p > log_p_cut or log_q > log_q_cut:
            continue
        expected = draws * size / population
        kept.append(
            EnrichmentResult(
                term_id=term.term_id,
                description=term.description,
                category=term.category,
                overlap=len(hits),
                expected=float(expected),
                term_size=size,
                fold_enrichment=float(len(hits) / expected) if expected > 0 else float("nan"),
                p=_floored_exp(log_p),
                log_p=float(log_p),
                q=_floored_exp(log_q),
                log_q=float(log_q),
                features=tuple(sorted(hits)),
            )
        )
    kept.sort(key=lambda r: (r.log_q, -r.overlap, r.term_id))

    logger.info(
        "enrichment (%s): foreground=%d universe=%d tested=%d retained=%d",
        category,
        draws,
        population,
        len(tested),
        len(kept),
    )
    return EnrichmentRun(
        results=tuple(kept),
        n_tested=len(tested),
        universe_size=population,
        foreground_size=draws,
        interrupted=interrupted,
    )

