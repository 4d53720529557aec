#!/usr/bin/env python
from __future__ import annotations

import argparse
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))


def _parse_covariates(specs: list[str] | None) -> dict[str, object]:
    """
    "age" or "age:continuous" -> continuous; "stage:categorical" -> categorical (sorted levels);
    "grade=G1,G2,G3" -> categorical with explicit level order (first = reference).
    """
    out: dict[str, object] = {}
    for spec in specs or []:
        if "=" in spec:
            name, levels = spec.split("=", 1)
            out[name] = [lvl for lvl in levels.split(",") if lvl]
        elif ":" in spec:
            name, kind = spec.split(":", 1)
            out[name] = kind
        else:
            out[spec] = "continuous"
    return out


def build_parser() -> argparse.ArgumentParser:
    from assocscan.config import AnnotationCategories

    p = argparse.ArgumentParser(description="Per-feature association scan + over-representation analysis")
    p.add_argument("--matrix", type=Path, required=True, help="Features x samples TSV (first column = feature id)")
    p.add_argument("--outcome", type=Path, required=True, help="Outcome TSV (first column = sample id)")
    p.add_argument("--out", type=Path, default=Path("results"), help="Output directory")

    g = p.add_mutually_exclusive_group(required=True)
    g.add_argument("--response", type=str, help="Outcome column for regression scans")
    g.add_argument("--time", type=str, help="Time-to-event column (survival scan; needs --event)")
    p.add_argument("--event", type=str, default=None, help="Event indicator column (1=event, 0=censored)")
    p.add_argument(
        "--covariate",
        action="append",
        default=None,
        help='Adjustment covariate: "age", "sex:categorical" or "grade=G1,G2,G3" (repeatable)',
    )
    p.add_argument("--model", choices=["ols", "logit"], default="ols", help="Regression model for --response")
    p.add_argument("--ties", choices=["efron", "breslow"], default="efron", help="Cox tie handling")
    p.add_argument("--standardize", action="store_true", help="Z-score each feature before fitting")
    p.add_argument("--min-samples", type=int, default=3, help="Min complete observations per feature")
    p.add_argument("--min-events", type=int, default=1, help="Min events per feature (survival)")
    p.add_argument("--threads", type=int, default=1, help="Parallel workers for per-feature fits")
    p.add_argument("--timeout", type=float, default=None, help="Whole-run time budget in seconds")

    p.add_argument("--gmt", type=Path, default=None, help="GMT gene set library for enrichment")
    p.add_argument(
        "--gmt-category",
        type=str,
        default=AnnotationCategories.HALLMARK,
        choices=sorted(AnnotationCategories.TERM_CATEGORIES),
        help="Category assigned to terms from --gmt",
    )
    p.add_argument("--effect-threshold", type=float, default=1.0, help="Effect cutoff for the foreground")
    p.add_argument("--direction", choices=["positive", "negative", "absolute"], default="absolute")
    p.add_argument("--max-q", type=float, default=None, help="Also require BH q <= this for the foreground")
    p.add_argument("--p-threshold", type=float, default=0.05, help="Raw p cutoff for enriched terms")
    p.add_argument("--q-threshold", type=float, default=0.25, help="Adjusted p cutoff for enriched terms")
    p.add_argument("--min-term-size", type=int, default=1, help="Min |term & universe|")
    p.add_argument("--max-term-size", type=int, default=None, help="Max |term & universe|")

    p.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console/file log level",
    )
    p.add_argument("--log-file", type=Path, default=None, help="Log file path (default: <out>/run.log)")
    p.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars")
    return p


def main() -> None:
    args = build_parser().parse_args()
    if args.time is not None and args.event is None:
        raise SystemExit("--time requires --event")

    from assocscan.logging_utils import configure_logging

    configure_logging(level=args.log_level, out_dir=args.out, log_file=args.log_file)

    from assocscan.annotations import InMemoryAnnotationStore
    from assocscan.config import EnrichmentConfig, PipelineParams, ScanConfig
    from assocscan.io import read_matrix_tsv, read_outcome_tsv, write_ids, write_tsv
    from assocscan.pipeline import run_pipeline

    matrix = read_matrix_tsv(args.matrix)
    outcome = read_outcome_tsv(args.outcome)
    annotations = InMemoryAnnotationStore.from_gmt(args.gmt, category=args.gmt_category) if args.gmt else None

    result = run_pipeline(
        matrix=matrix,
        outcome=outcome,
        time_col=args.time,
        event_col=args.event,
        response_col=args.response,
        covariates=_parse_covariates(args.covariate),
        annotations=annotations,
        params=PipelineParams(
            effect_threshold=args.effect_threshold,
            direction=args.direction,
            max_q=args.max_q,
            category=args.gmt_category,
            p_threshold=args.p_threshold,
            q_threshold=args.q_threshold,
        ),
        scan_config=ScanConfig(
            model=args.model,
            ties=args.ties,
            standardize=args.standardize,
            min_samples=args.min_samples,
            min_events=args.min_events,
            n_jobs=args.threads,
            timeout=args.timeout,
            show_progress=not args.no_progress,
        ),
        enrichment_config=EnrichmentConfig(
            min_term_size=args.min_term_size,
            max_term_size=args.max_term_size,
            timeout=args.timeout,
        ),
    )

    write_tsv(result.scan_frame(), args.out / "scan.tsv")
    write_ids(result.foreground, args.out / "foreground.txt")
    if result.enrichment is not None:
        write_tsv(result.enrichment.to_frame(), args.out / "enrichment.tsv")
    if result.interrupted:
        raise SystemExit(2)


if __name__ == "__main__":
    main()
